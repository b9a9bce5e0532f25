"""Process logging setup shared by the CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_NAME = "archbundle"

# Marks handlers installed here so repeated calls replace only our own.
_HANDLER_TAG = "_archbundle_handler"


def resolve_level(level: int | str) -> int:
    """Accept ``logging`` constants or names such as ``"debug"``."""

    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level {level!r}")
    return value


def _tagged(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.setLevel(level)
    setattr(handler, _HANDLER_TAG, True)
    return handler


def configure_logging(log_file: Path | None = None, level: int | str = logging.INFO) -> logging.Logger:
    """Install console logging, plus a UTF-8 file handler when ``log_file`` is given."""

    numeric_level = resolve_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    root_logger.addHandler(_tagged(logging.StreamHandler(), numeric_level, formatter))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_tagged(logging.FileHandler(log_file, encoding="utf-8"), numeric_level, formatter))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    return logger
