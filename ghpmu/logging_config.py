"""Centralized logging configuration for ghpmu."""

from __future__ import annotations

import logging
import sys

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure logging for ghpmu.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO.
        log_file: Optional path to log file. If provided, logs will be written to both
                  console and file.

    Example:
        >>> setup_logging("DEBUG")  # Show GraphQL requests and per-field decisions
        >>> setup_logging("INFO", "triage.log")  # Standard output + file logging
        >>> setup_logging("ERROR")  # Errors only
    """
    logger = logging.getLogger("ghpmu")
    logger.setLevel(LEVELS.get(level.upper(), logging.INFO))

    # Remove any existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    logger.propagate = False
