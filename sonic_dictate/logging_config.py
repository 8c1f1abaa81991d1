"""Console and file logging for the ``sonic_dictate`` logger tree."""

import logging
import sys
from pathlib import Path

LOG_DIR = Path.home() / ".sonic_dictate" / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "sonic_dictate.log"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

# HTTP client libraries log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def _file_handler() -> logging.Handler:
    # The file keeps DEBUG regardless of the console level
    handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach console and file handlers once; later calls only change the level."""
    logger = logging.getLogger("sonic_dictate")
    logger.setLevel(level)
    if logger.handlers:
        return logger

    logger.addHandler(_console_handler(level))
    try:
        logger.addHandler(_file_handler())
    except OSError as e:
        # OSError: log file cannot be created or opened (PermissionError included)
        logger.warning(f"Could not set up file logging: {e}")
    return logger


def quiet_third_party(level: int = logging.WARNING) -> None:
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
