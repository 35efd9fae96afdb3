"""Tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest

from glados.logging import FORENSICS_LOGGER, get_logger, setup_logging


def _settings(tmp_path, **overrides):
    s = MagicMock()
    s.log_level = "DEBUG"
    s.log_to_file = False
    s.log_directory = str(tmp_path / "logs")
    s.log_file_path = str(tmp_path / "logs" / "glados.log")
    s.moderation_log_path = str(tmp_path / "logs" / "glados-moderation.log")
    s.log_file_max_bytes = 1024
    s.log_file_backup_count = 1
    s.log_quiet_loggers = ["discord", "asyncpg"]
    s.is_development = True
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def _own_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if (h.get_name() or "").startswith("glados-")]


@pytest.fixture(autouse=True)
def _restore_handlers():
    yield
    for logger in (logging.getLogger(), logging.getLogger(FORENSICS_LOGGER)):
        for handler in _own_handlers(logger):
            logger.removeHandler(handler)
            handler.close()


class TestSetupLogging:
    def test_console_only(self, tmp_path) -> None:
        with patch("glados.logging.get_settings", return_value=_settings(tmp_path)):
            setup_logging()

        assert logging.getLogger("discord").level == logging.WARNING
        assert logging.getLogger("asyncpg").level == logging.WARNING
        assert [h.get_name() for h in _own_handlers(logging.getLogger())] == ["glados-console"]
        assert not (tmp_path / "logs").exists()

    def test_repeated_setup_does_not_stack_handlers(self, tmp_path) -> None:
        with patch("glados.logging.get_settings", return_value=_settings(tmp_path)):
            setup_logging()
            setup_logging()

        assert len(_own_handlers(logging.getLogger())) == 1

    def test_file_logging_splits_moderation_records(self, tmp_path) -> None:
        settings = _settings(tmp_path, log_to_file=True, is_development=False)
        with patch("glados.logging.get_settings", return_value=settings):
            setup_logging()

        assert (tmp_path / "logs").is_dir()
        root_files = [
            h for h in _own_handlers(logging.getLogger()) if isinstance(h, RotatingFileHandler)
        ]
        assert [h.baseFilename for h in root_files] == [settings.log_file_path]
        moderation = _own_handlers(logging.getLogger(FORENSICS_LOGGER))
        assert len(moderation) == 1
        assert moderation[0].baseFilename == settings.moderation_log_path
        assert moderation[0].level == logging.WARNING

    def test_unwritable_directory_falls_back_to_console(self, tmp_path) -> None:
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        settings = _settings(tmp_path, log_to_file=True)
        with patch("glados.logging.get_settings", return_value=settings):
            setup_logging()

        handlers = _own_handlers(logging.getLogger())
        assert [h.get_name() for h in handlers] == ["glados-console"]
        assert _own_handlers(logging.getLogger(FORENSICS_LOGGER)) == []


def test_get_logger_returns_bound_logger() -> None:
    log = get_logger("glados.test")
    assert hasattr(log, "info")
    assert hasattr(log, "warning")
