"""Unit tests for logging configuration module.

Tests verify that setup_logging installs the console handler at the requested
level, applies the per-module levels and only logs to a file when enabled.
"""

import logging
from unittest.mock import patch

import pytest

from edify_ai.core import logging_config
from edify_ai.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_handlers():
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    root_logger.handlers = handlers
    root_logger.setLevel(level)


def console_handler():
    return next(h for h in logging.getLogger().handlers if type(h) is logging.StreamHandler)


class TestSetupLogging:
    """Test setup_logging handlers and levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("WARNING", logging.WARNING),
            ("error", logging.ERROR),
        ],
    )
    def test_console_level(self, log_level, expected_level):
        setup_logging(log_level=log_level, enable_file=False)

        assert console_handler().level == expected_level
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.parametrize(
        "log_format,expected",
        [("simple", SIMPLE_FORMAT), ("json", JSON_FORMAT), ("detailed", DETAILED_FORMAT), ("other", DETAILED_FORMAT)],
    )
    def test_formats(self, log_format, expected):
        setup_logging(log_level="INFO", log_format=log_format, enable_file=False)

        assert console_handler().formatter._fmt == expected

    def test_existing_handlers_are_replaced(self):
        setup_logging(log_level="INFO", enable_file=False)
        setup_logging(log_level="INFO", enable_file=False)

        assert len(logging.getLogger().handlers) == 1

    def test_module_levels(self):
        setup_logging(log_level="INFO", enable_file=False)

        for module_name, level in MODULE_LOG_LEVELS.items():
            assert logging.getLogger(module_name).level == logging.getLevelName(level)

    def test_file_logging(self, tmp_path):
        with patch.object(logging_config, "ENABLE_FILE_LOGGING", True), patch.object(
            logging_config, "LOG_FILE_DIR", str(tmp_path / "logs")
        ):
            setup_logging(log_level="INFO", enable_file=True)

        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert (tmp_path / "logs" / "edify_ai.log").exists()
        file_handlers[0].close()

    def test_file_logging_needs_both_switches(self, tmp_path):
        with patch.object(logging_config, "ENABLE_FILE_LOGGING", False), patch.object(
            logging_config, "LOG_FILE_DIR", str(tmp_path / "logs")
        ):
            setup_logging(log_level="INFO", enable_file=True)

        assert not (tmp_path / "logs").exists()


class TestGetLogger:
    def test_named_logger(self):
        assert get_logger("edify_ai.server.api").name == "edify_ai.server.api"
