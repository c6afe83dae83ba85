"""
Root logger setup for the ftp-vfs command line.

Library code never configures logging; it only logs through
``logging.getLogger(__name__)``. The CLI calls setup_logging() once with the
[logging] section of the configuration.
"""

import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"

# Client libraries that are chatty at DEBUG
NOISY_LOGGERS = ("paramiko", "urllib3")


def _file_handler(path: str) -> logging.Handler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, mode="a", encoding="utf-8")


def setup_logging(config: LogConfig) -> None:
    """
    Route session, backend and transfer logs to a file and/or stderr.

    Handlers from an earlier call are replaced. Unknown level names fall back
    to INFO; paramiko and urllib3 never log below INFO.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if config.file:
        handlers.append(_file_handler(config.file))
    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
