"""Shared logging setup for the site checks."""
from __future__ import annotations

import logging
import os
from logging import Logger
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final


ROOT_LOGGER_NAME: Final[str] = "sitecheck"
DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_OWNED_FLAG: Final[str] = "_sitecheck_owned"
_CONFIGURED: bool = False


def _string_to_level(level_name: str) -> int:
    level = getattr(logging, level_name.upper(), None)
    if isinstance(level, int):
        return level
    return logging.INFO


def _int_env(key: str, fallback: int) -> int:
    try:
        return int(os.getenv(key, str(fallback)))
    except ValueError:
        return fallback


def _file_handler(formatter: logging.Formatter, level: int) -> RotatingFileHandler:
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / os.getenv("LOG_FILE_NAME", "sitecheck.log"),
        maxBytes=_int_env("LOG_MAX_BYTES", 5 * 1024 * 1024),
        backupCount=_int_env("LOG_BACKUP_COUNT", 3),
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(force: bool = False) -> Logger:
    """Configure the ``sitecheck`` logger tree from ``LOG_*`` environment variables.

    Calling it again is a no-op unless ``force`` is set, which is how the
    session picks up values loaded from the env file after import time.
    """
    global _CONFIGURED
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if _CONFIGURED and not force:
        return logger

    level = _string_to_level(os.getenv("LOG_LEVEL", "INFO"))
    formatter = logging.Formatter(
        os.getenv("LOG_FORMAT", DEFAULT_FORMAT),
        datefmt=os.getenv("LOG_DATE_FORMAT", "%Y-%m-%d %H:%M:%S"),
    )

    for handler in list(logger.handlers):
        if getattr(handler, _OWNED_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(level)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]
    if os.getenv("LOG_FILE", "false").lower() in {"1", "true", "yes"}:
        handlers.append(_file_handler(formatter, level))

    for handler in handlers:
        setattr(handler, _OWNED_FLAG, True)
        logger.addHandler(handler)

    _CONFIGURED = True
    return logger


def get_logger(name: str | None = None) -> Logger:
    """Return ``sitecheck.<name>``, configuring the tree on first use."""
    configure_logging()
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


__all__ = ["DEFAULT_FORMAT", "ROOT_LOGGER_NAME", "configure_logging", "get_logger"]
