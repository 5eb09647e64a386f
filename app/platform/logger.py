import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from app.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_LOG_BYTES = 10_000_000
LOG_BACKUPS = 5


def resolve_log_dir(log_dir: Optional[str] = None) -> str:
    """Absolute log directory, created on first use. Relative paths hang off the cwd."""
    path = os.path.join(os.getcwd(), log_dir or settings.LOG_DIR)
    os.makedirs(path, exist_ok=True)
    return path


def rotating_handler(path: str, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    handler.setFormatter(formatter)
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Named application logger writing to the console and `site_audit.log`.
    Handlers are attached once per name.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    logger.addHandler(rotating_handler(os.path.join(resolve_log_dir(), "site_audit.log"), formatter))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
