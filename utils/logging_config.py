"""
Per-module loggers for the booking and queue services.

Every module logs to stdout; modules that pass ``log_file`` also write to a
rotating file under ``settings.log_dir``. Modules naming the same file share
one handler.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

_file_handlers: Dict[Path, RotatingFileHandler] = {}


def setup_logging(
    name: str,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """
    Return the logger for ``name``, attaching handlers on first use.

    Args:
        name: Logger name, usually ``__name__``
        log_level: Level name; defaults to ``settings.log_level``
        log_file: File name under the log directory (console only if omitted)
        log_dir: Defaults to ``settings.log_dir``
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    if log_level is None or log_dir is None:
        from config import settings

        log_level = log_level or settings.log_level
        log_dir = log_dir or settings.log_dir

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        logger.addHandler(_file_handler(Path(log_dir) / log_file, formatter))

    return logger


def _file_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = _file_handlers.get(path)
    if handler is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        handler.setFormatter(formatter)
        _file_handlers[path] = handler
    return handler
