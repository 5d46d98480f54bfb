"""
Unit tests for the burn-in logging setup.
"""

import logging
from pathlib import Path

import pytest

from burnin_kit.logger import (
    ERR_FILE_NAME,
    LOG_DIR_ENV,
    LOG_FILE_NAME,
    LogSection,
    LogStep,
    Logger,
    get_log_dir,
    get_module_logger,
)


def _burnin_handlers():
    return [
        h for h in logging.getLogger().handlers
        if isinstance(h, logging.FileHandler)
        and Path(h.baseFilename).name in (LOG_FILE_NAME, ERR_FILE_NAME)
    ]


def _flush():
    for handler in logging.getLogger().handlers:
        handler.flush()


@pytest.fixture
def restore_logging():
    """Return logging to the session log directory after the test."""
    yield
    Logger.reset()
    Logger.init_logging()


class TestGetLogDir:
    """Test suite for log directory resolution."""

    def test_env_override(self, tmp_path, monkeypatch):
        """Test DISKBURNIN_LOG_DIR selects and creates the directory."""
        target = tmp_path / 'nested' / 'logs'
        monkeypatch.setenv(LOG_DIR_ENV, str(target))

        assert get_log_dir() == target
        assert target.is_dir()


class TestLogger:
    """Test suite for Logger configuration."""

    def test_get_logger_cached(self):
        """Test the same logger object is returned for a name."""
        assert get_module_logger('burnin.test') is get_module_logger('burnin.test')

    def test_init_logging_idempotent(self, restore_logging):
        """Test repeated initialization does not duplicate handlers."""
        Logger.init_logging()
        Logger.init_logging()

        names = sorted(Path(h.baseFilename).name for h in _burnin_handlers())
        assert names == [ERR_FILE_NAME, LOG_FILE_NAME]

    def test_files_follow_log_dir(self, tmp_path, restore_logging):
        """Test both files move to a new directory and errors reach burnin.err."""
        Logger.init_logging(log_dir=tmp_path)
        logger = get_module_logger('burnin.test.files')

        logger.info("info line")
        logger.error("error line")
        _flush()

        assert all(Path(h.baseFilename).resolve().parent == tmp_path.resolve() for h in _burnin_handlers())
        assert 'info line' in (tmp_path / LOG_FILE_NAME).read_text(encoding='utf-8')
        err_text = (tmp_path / ERR_FILE_NAME).read_text(encoding='utf-8')
        assert 'error line' in err_text
        assert 'info line' not in err_text

    def test_reset(self, restore_logging):
        """Test reset detaches the burn-in file handlers."""
        Logger.reset()

        assert _burnin_handlers() == []
        assert Logger._initialized is False

    def test_banners(self, tmp_path, restore_logging):
        """Test section and step banners are written to the log."""
        Logger.init_logging(log_dir=tmp_path)

        LogSection("Disk Burn-in Test Started")
        LogStep(3, "Temperature monitoring")
        _flush()

        text = (tmp_path / LOG_FILE_NAME).read_text(encoding='utf-8')
        assert 'Disk Burn-in Test Started' in text
        assert '[STEP 3] Temperature monitoring' in text
