import logging
import os
from typing import Optional

LOGGER_NAME = "spotify_backup"

# Third-party loggers that are chatty at INFO (httpx logs every request line).
NOISY_LOGGERS = ["httpx", "httpcore"]

_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
_DATE_FORMAT = "%H:%M:%S"

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure console (and optional file) logging for the backup tool.

    Safe to call more than once; handlers are replaced, not stacked.
    """
    numeric_level = getattr(logging, str(level or "INFO").upper(), logging.INFO)

    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.propagate = False

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def log_debug(message: str) -> None:
    logger.debug(message)


def log_info(message: str) -> None:
    logger.info(message)


def log_success(message: str) -> None:
    logger.info(f"✅ {message}")


def log_warning(message: str) -> None:
    logger.warning(message)


def log_error(message: str) -> None:
    logger.error(message)
