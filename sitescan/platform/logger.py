import logging
import os
from logging.handlers import RotatingFileHandler

from sitescan.platform.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _log_file_path() -> str:
    log_dir = settings.LOG_DIR or os.path.join(os.getcwd(), "logs")
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, "sitescan.log")


def get_logger(name: str):
    """
    Logger writing to the console and, unless LOG_TO_FILE is off, to
    logs/sitescan.log (rotated at 10MB, 5 backups).

    Worker and API processes share the file; messages about a single scan or
    task are prefixed with its id, e.g. "[<scan_id>] ...".
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        file_handler = RotatingFileHandler(_log_file_path(), maxBytes=10_000_000, backupCount=5)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    # handlers are attached here; don't also print through the root logger
    logger.propagate = False
    return logger
