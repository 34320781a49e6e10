from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from oms_mirror.config.models import LoggingSettings

APP_LOGGER = "oms_mirror"
_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
# Per-request chatter from the HTTP client stack.
_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.internal")


def _level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def init_logging(settings: LoggingSettings) -> None:
    """
    Route mirror records at ``settings.level`` and third-party records at
    ``settings.library_level`` to stderr, plus a daily file when a path is set.
    """
    app_level = _level(settings.level)
    library_level = _level(settings.library_level)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(library_level)
    logging.getLogger(APP_LOGGER).setLevel(app_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, library_level))

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if not settings.file_path.strip():
        return
    file_path = Path(settings.file_path)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=str(file_path),
            when="midnight",
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
    except OSError:
        logging.getLogger(APP_LOGGER).warning("File logging disabled; cannot open path=%s", file_path, exc_info=True)
        return
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


__all__ = ["APP_LOGGER", "init_logging"]
