"""
Logging setup shared by both server variants.
"""

import logging
import os
import sys
from typing import Optional

from minihttpd import config

LOGGER_NAME = "minihttpd"


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = config.LOG_FILE) -> logging.Logger:
    """
    Configure the package logger.

    Logs go to stdout, and additionally to log_file when one is given.
    Calling this again replaces the previous handlers.

    Args:
        level: Logging level for the logger and its handlers
        log_file: Optional path of a file to append log records to

    Returns:
        The configured "minihttpd" logger
    """
    formatter = logging.Formatter(config.LOG_FORMAT, config.LOG_DATE_FORMAT)
    logger = logging.getLogger(LOGGER_NAME)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)

    # Prevent duplicate logs
    logger.propagate = False
    return logger
