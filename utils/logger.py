import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

ROOT_LOGGER_NAME = "spotify_player"

_LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the application logger or one of its children."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(log_file: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """
    Configure the application logger.

    The interactive UI owns the terminal, so records go to a rotating file
    when `log_file` is given and to stderr otherwise.
    """
    logger = get_logger()
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    # Calling setup twice must not duplicate output.
    if logger.handlers:
        return logger

    formatter = logging.Formatter(_LOG_FORMAT)
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            log_file, maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


# Console helpers for the CLI and menu paths (never used while the TUI runs).

def log_info(message: str) -> None:
    print(message)
    get_logger("console").info(message)


def log_success(message: str) -> None:
    print(f"✅ {message}")
    get_logger("console").info(message)


def log_warning(message: str) -> None:
    print(f"⚠️  {message}")
    get_logger("console").warning(message)


def log_error(message: str) -> None:
    print(f"❌ {message}", file=sys.stderr)
    get_logger("console").error(message)
