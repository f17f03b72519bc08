"""
Unit tests for configuration settings and logging setup.
"""

import logging

import pytest

from syncrun.config.settings import (
    AppSettings,
    SyncControllerSettings,
    get_env_bool,
    get_env_float,
    get_env_int,
)
from syncrun.system.logging_config import StructuredFormatter, get_logger, setup_logging


class TestSettings:
    """Tests for environment-driven settings."""

    def test_sync_controller_defaults(self, monkeypatch):
        monkeypatch.delenv("SYNCCTL_URL", raising=False)
        monkeypatch.delenv("SYNCCTL_AUTH_KEY", raising=False)
        monkeypatch.delenv("SYNCCTL_TIMEOUT", raising=False)

        config = SyncControllerSettings()

        assert config.syncctl_url is None
        assert config.syncctl_auth_key is None
        assert config.syncctl_timeout is None

    def test_sync_controller_from_env(self, monkeypatch):
        monkeypatch.setenv("SYNCCTL_URL", "http://syncctl:3043")
        monkeypatch.setenv("SYNCCTL_AUTH_KEY", "ctl-secret")
        monkeypatch.setenv("SYNCCTL_TIMEOUT", "12.5")

        config = SyncControllerSettings()

        assert config.syncctl_url == "http://syncctl:3043"
        assert config.syncctl_auth_key == "ctl-secret"
        assert config.syncctl_timeout == 12.5

    def test_app_base_url(self, monkeypatch):
        monkeypatch.setenv("APP_BASE_URL", "https://console.example.com")

        assert AppSettings().app_base_url == "https://console.example.com"

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("on", True), ("false", False), ("no", False)])
    def test_get_env_bool(self, monkeypatch, value, expected):
        monkeypatch.setenv("SYNCRUN_FLAG", value)

        assert get_env_bool("SYNCRUN_FLAG") is expected

    def test_invalid_numbers_fall_back_to_default(self, monkeypatch):
        monkeypatch.setenv("SYNCRUN_NUMBER", "abc")

        assert get_env_int("SYNCRUN_NUMBER", 7) == 7
        assert get_env_float("SYNCRUN_NUMBER") is None


class TestLogging:
    """Tests for logging configuration."""

    @pytest.fixture
    def restore_root_logger(self):
        root_logger = logging.getLogger()
        handlers = list(root_logger.handlers)
        level = root_logger.level
        yield
        for handler in root_logger.handlers:
            if handler not in handlers:
                handler.close()
        root_logger.handlers[:] = handlers
        root_logger.setLevel(level)

    def test_setup_creates_log_files(self, tmp_path, restore_root_logger):
        setup_logging(log_dir=str(tmp_path))

        logging.getLogger("syncrun.test").error("dispatch failed")

        assert (tmp_path / "app.log").exists()
        assert "dispatch failed" in (tmp_path / "errors.log").read_text()

    def test_structured_formatter_defaults(self):
        formatter = StructuredFormatter("%(service_name)s %(workspace_id)s %(sync_id)s %(message)s")
        record = logging.LogRecord("syncrun", logging.INFO, __file__, 1, "hello", None, None)

        assert formatter.format(record) == "syncrun None None hello"

    def test_structured_formatter_task_context(self):
        formatter = StructuredFormatter("%(sync_id)s %(task_id)s %(message)s")
        record = logging.LogRecord("syncrun", logging.ERROR, __file__, 1, "dispatch failed", None, None)
        record.sync_id = "sync-1"
        record.task_id = "t-1"

        assert formatter.format(record) == "sync-1 t-1 dispatch failed"

    def test_adapter_merges_context(self, caplog):
        logger = get_logger("syncrun.test.adapter", service_name="sync-run")

        with caplog.at_level(logging.INFO, logger="syncrun.test.adapter"):
            logger.info("run started", extra={"sync_id": "sync-1"})

        record = caplog.records[-1]
        assert record.service_name == "sync-run"
        assert record.sync_id == "sync-1"
