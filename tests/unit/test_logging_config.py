"""
Unit tests for module logger setup.
"""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

from config import settings
from utils.logging_config import setup_logging


def _file_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def test_console_only_without_log_file(tmp_path):
    logger = setup_logging("tests.logging.console", log_level="debug", log_dir=str(tmp_path))

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert _file_handlers(logger) == []


def test_setup_is_idempotent(tmp_path):
    first = setup_logging("tests.logging.repeat", log_file="repeat.log", log_dir=str(tmp_path))
    second = setup_logging("tests.logging.repeat", log_file="repeat.log", log_dir=str(tmp_path))

    assert first is second
    assert len(second.handlers) == 2


def test_modules_share_file_handler(tmp_path):
    queue = setup_logging("tests.logging.queue", log_file="salon.log", log_dir=str(tmp_path / "logs"))
    lifecycle = setup_logging("tests.logging.lifecycle", log_file="salon.log", log_dir=str(tmp_path / "logs"))

    assert _file_handlers(queue) == _file_handlers(lifecycle)

    queue.info("entry added")
    lifecycle.info("booking confirmed")
    for handler in _file_handlers(queue):
        handler.flush()

    lines = (tmp_path / "logs" / "salon.log").read_text(encoding="utf-8").splitlines()
    assert "entry added" in lines[0]
    assert "booking confirmed" in lines[1]


def test_level_and_dir_default_to_settings(tmp_path):
    with patch.multiple(settings, log_level="WARNING", log_dir=str(tmp_path)):
        logger = setup_logging("tests.logging.defaults", log_file="defaults.log")

    assert logger.level == logging.WARNING
    assert (tmp_path / "defaults.log").exists()
