# backend/tripstream/core/logger.py

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from tripstream.core.config_loader import BACKEND_DIR, settings


# -------------------------------------------------------------------
# LOG FILE
# -------------------------------------------------------------------
LOG_DIR = BACKEND_DIR / "logs"
LOG_FILE = LOG_DIR / "trip_stream.log"

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)


def _build_handlers(log_file: Path) -> list:
    formatter = logging.Formatter(LOG_FORMAT)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,   # 5 MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    # stream frames are logged at DEBUG; keep the console quiet outside dev
    console_handler.setLevel(
        logging.DEBUG if settings.environment == "development" else logging.INFO
    )

    return [file_handler, console_handler]


# -------------------------------------------------------------------
# GLOBAL LOGGER
# -------------------------------------------------------------------
logger = logging.getLogger("trip_stream")
logger.setLevel(logging.DEBUG)

# Prevent duplicate handlers when uvicorn reloads the app
if not logger.handlers:
    for handler in _build_handlers(LOG_FILE):
        logger.addHandler(handler)


def get_logger(component: str) -> logging.Logger:
    """Child logger, e.g. ``trip_stream.orchestrator``; shares the handlers above."""
    return logger.getChild(component)
