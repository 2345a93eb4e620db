"""
Unit tests for logging setup
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghpmu.logging_config import setup_logging


class TestSetupLogging:
    """Test setup_logging()"""

    def test_level_and_single_console_handler(self):
        """Should set the level and not stack handlers on repeated calls"""
        setup_logging("DEBUG")
        setup_logging("warning")

        logger = logging.getLogger("ghpmu")
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_unknown_level_defaults_to_info(self):
        """Should fall back to INFO"""
        setup_logging("CHATTY")

        assert logging.getLogger("ghpmu").level == logging.INFO

    def test_log_file(self, tmp_path):
        """Should also write to a file with timestamps"""
        log_file = tmp_path / "ghpmu.log"
        setup_logging("INFO", str(log_file))

        logging.getLogger("ghpmu.triage").info("hello from triage")
        for handler in logging.getLogger("ghpmu").handlers:
            handler.flush()

        content = log_file.read_text()
        assert "ghpmu.triage - INFO - hello from triage" in content
