# backend/core/logging.py

import logging
import os
import sys


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that flood stdout at INFO
QUIET_LOGGERS = {
    "redis": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def setup_logging() -> None:
    """
    Route every module logger to stdout at LOG_LEVEL (default INFO).

    Modules log through ``logging.getLogger(__name__)``. When Uvicorn has
    already installed handlers only the level is adjusted.
    """
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
