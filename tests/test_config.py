"""AppConfig environment loading and validation."""

from __future__ import annotations

import logging

import pytest

from greensync.config import AppConfig, load_config, setup_logging
from greensync.domain.exceptions import ConfigurationError

_ENV_VARS = [
    "GREENSYNC_ENV",
    "GREENSYNC_DEBUG",
    "GREENSYNC_SECRET_KEY",
    "GREENSYNC_DATABASE_PATH",
    "GREENSYNC_API_URL",
    "GREENSYNC_REQUEST_TIMEOUT",
    "GREENSYNC_MAX_DAYS_PER_REQUEST",
    "GREENSYNC_UPLOAD_BATCH_SIZE",
    "GREENSYNC_LOG_DIR",
    "GREENSYNC_LOG_TO_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_sync_defaults(self):
        config = load_config()

        assert config.max_days_per_request == 15
        assert config.upload_batch_size == 30
        assert config.request_timeout_seconds == 30
        assert config.environment == "development"
        assert config.api_url == "https://greenhouseapi.azurewebsites.net/api"

    def test_flask_config(self):
        flask_config = AppConfig(database_path="db/test.db").as_flask_config()

        assert flask_config["DATABASE_PATH"] == "db/test.db"
        assert flask_config["GREENSYNC_API_URL"] == "https://greenhouseapi.azurewebsites.net/api"


class TestEnvironment:
    def test_values_come_from_environment(self, monkeypatch):
        monkeypatch.setenv("GREENSYNC_UPLOAD_BATCH_SIZE", "10")
        monkeypatch.setenv("GREENSYNC_MAX_DAYS_PER_REQUEST", "7")
        monkeypatch.setenv("GREENSYNC_LOG_TO_FILE", "no")
        monkeypatch.setenv("GREENSYNC_DEBUG", "true")
        monkeypatch.setenv("GREENSYNC_API_URL", "http://localhost:5000/api/")

        config = load_config()

        assert config.upload_batch_size == 10
        assert config.max_days_per_request == 7
        assert config.log_to_file is False
        assert config.debug is True
        assert config.api_url == "http://localhost:5000/api"

    def test_non_integer_is_rejected(self, monkeypatch):
        monkeypatch.setenv("GREENSYNC_UPLOAD_BATCH_SIZE", "thirty")

        with pytest.raises(ValueError, match="GREENSYNC_UPLOAD_BATCH_SIZE"):
            load_config()


class TestValidation:
    @pytest.mark.parametrize("field", ["upload_batch_size", "max_days_per_request", "request_timeout_seconds"])
    def test_non_positive_values_are_rejected(self, field):
        with pytest.raises(ConfigurationError):
            AppConfig(**{field: 0})

    def test_default_secret_refused_in_production(self):
        with pytest.raises(ConfigurationError):
            AppConfig(environment="production")

    def test_production_with_secret(self):
        assert AppConfig(environment="production", secret_key="s3cr3t").environment == "production"

    def test_empty_api_url(self):
        with pytest.raises(ConfigurationError):
            AppConfig(api_url="")


class TestSetupLogging:
    def test_handlers_are_not_duplicated(self, tmp_path):
        root = logging.getLogger()
        before = list(root.handlers)
        try:
            setup_logging(False, log_dir=str(tmp_path), log_to_file=True)
            setup_logging(True, log_dir=str(tmp_path), log_to_file=True)

            names = [getattr(h, "name", "") for h in root.handlers]
            assert names.count("greensync_console") == 1
            assert names.count("greensync_file") == 1
            assert (tmp_path / "greensync.log").exists()
            assert logging.getLogger("urllib3").level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
