"""Logging configuration for the rke2lab package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

NOISY_LOGGERS = ('urllib3', 'kubernetes')


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the ``rke2lab`` logger hierarchy.

    Args:
        level: Log level name used when debug is off
        debug: Force DEBUG level
        log_file: Optional path of a rotating log file
        max_size_mb: Size at which the log file is rotated
        backup_count: Number of rotated files to keep

    Returns:
        The package root logger
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("rke2lab")
    logger.setLevel(log_level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(log_level)

    if log_file and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        path = Path(log_file).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(log_level)
        logger.addHandler(file_handler)
        logger.debug(f"Logging to file: {path}")

    # Disable debug logging for noisy libraries
    if not debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger
