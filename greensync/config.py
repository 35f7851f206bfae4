"""
Configuration for GreenSync
===========================
Runtime settings for the local store, the greenhouse API transport and the
sync engine. Values are read from environment variables with sensible
defaults for a single greenhouse controller.
Setups the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from greensync.domain.exceptions import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("GREENSYNC_ENV", "development"))
    debug: bool = field(default_factory=lambda: _env_bool("GREENSYNC_DEBUG", False))
    secret_key: str = field(default_factory=lambda: os.getenv("GREENSYNC_SECRET_KEY", "GreenSyncDevSecretKey"))
    database_path: str = field(default_factory=lambda: os.getenv("GREENSYNC_DATABASE_PATH", "database/greensync.db"))

    # Greenhouse API
    api_url: str = field(
        default_factory=lambda: os.getenv("GREENSYNC_API_URL", "https://greenhouseapi.azurewebsites.net/api")
    )
    request_timeout_seconds: int = field(default_factory=lambda: _env_int("GREENSYNC_REQUEST_TIMEOUT", 30))

    # Sync engine
    max_days_per_request: int = field(default_factory=lambda: _env_int("GREENSYNC_MAX_DAYS_PER_REQUEST", 15))
    """Days of sensor history requested per page."""

    upload_batch_size: int = field(default_factory=lambda: _env_int("GREENSYNC_UPLOAD_BATCH_SIZE", 30))
    """Never-uploaded history blocks posted per request."""

    # Logging
    log_dir: str = field(default_factory=lambda: os.getenv("GREENSYNC_LOG_DIR", "logs"))
    log_to_file: bool = field(default_factory=lambda: _env_bool("GREENSYNC_LOG_TO_FILE", True))

    # Default insecure secret key - used only for detection
    _DEFAULT_SECRET_KEY: str = field(default="GreenSyncDevSecretKey", init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.environment == "production" and self.secret_key == self._DEFAULT_SECRET_KEY:
            raise ConfigurationError(
                "Cannot use default secret key in production!\n"
                "Set GREENSYNC_SECRET_KEY environment variable to a secure random value."
            )
        for name in ("request_timeout_seconds", "max_days_per_request", "upload_batch_size"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {getattr(self, name)}")
        if not self.api_url:
            raise ConfigurationError("GREENSYNC_API_URL must not be empty")
        self.api_url = self.api_url.rstrip("/")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "GREENSYNC_API_URL": self.api_url,
        }


def setup_logging(debug: bool = False, *, log_dir: str = "logs", log_to_file: bool = True) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    # Root logger
    root = logging.getLogger()
    root.setLevel(log_level)

    # Keep existing handlers but avoid adding duplicates when called multiple times
    has_console = any(getattr(h, "name", "") == "greensync_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "greensync_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "greensync_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if log_to_file and not has_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "greensync.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "greensync_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    # Ensure handler levels follow the desired log level
    for handler in root.handlers:
        if getattr(handler, "name", "") in {"greensync_console", "greensync_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info(f"Logging initialized at level: {logging.getLevelName(log_level)}")

    # requests/urllib3 log every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
