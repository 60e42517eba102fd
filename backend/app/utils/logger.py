import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

from app.config import get_settings

settings = get_settings()

# Create logs directory if it doesn't exist
logs_dir = Path(settings.LOG_DIR)
logs_dir.mkdir(parents=True, exist_ok=True)

level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

logger = logging.getLogger("credit_journey")
logger.setLevel(level)
logger.propagate = False

# Prevent duplicate handlers on re-import (uvicorn --reload)
if logger.handlers:
    logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(level)
console_handler.setFormatter(logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
))
logger.addHandler(console_handler)

file_format = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

file_handler = RotatingFileHandler(
    logs_dir / "app.log",
    maxBytes=10 * 1024 * 1024,  # 10MB
    backupCount=5
)
file_handler.setLevel(logging.INFO)
file_handler.setFormatter(file_format)
logger.addHandler(file_handler)

error_handler = RotatingFileHandler(
    logs_dir / "errors.log",
    maxBytes=10 * 1024 * 1024,  # 10MB
    backupCount=5
)
error_handler.setLevel(logging.ERROR)
error_handler.setFormatter(file_format)
logger.addHandler(error_handler)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance. If name is provided, returns a child logger."""
    if name:
        return logger.getChild(name)
    return logger
