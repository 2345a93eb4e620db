"""Allow running as ``python -m ghpmu``."""

import sys

from ghpmu.cli import main

sys.exit(main())
