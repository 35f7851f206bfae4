from __future__ import annotations

import atexit
import logging
import threading
from typing import Any

from flask import Flask

from greensync.config import load_config, setup_logging

__version__ = "1.0.0"


def create_app(config_overrides: dict[str, Any] | None = None, *, container=None) -> Flask:
    """Build the Flask application exposing the sync API.

    Args:
        config_overrides: Config field overrides, keys matched case-insensitively
        container: Prebuilt ServiceContainer (tests); built from config otherwise
    """
    config = container.config if container is not None else load_config()
    if config_overrides and container is None:
        for key, value in config_overrides.items():
            setattr(config, key.lower(), value)

    setup_logging(debug=config.debug, log_dir=config.log_dir, log_to_file=config.log_to_file)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    if container is None:
        from greensync.services.container import ServiceContainer

        container = ServiceContainer.build(config)
    flask_app.config["CONTAINER"] = container
    container.database.init_app(flask_app)

    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        container.shutdown()

    atexit.register(_graceful_shutdown, "atexit")

    from greensync.blueprints.api.sync import sync_api

    flask_app.register_blueprint(sync_api, url_prefix="/api/sync")

    for bp_name in flask_app.blueprints:
        logging.info(" Registered blueprint: %s", bp_name)

    logging.getLogger(__name__).info("GreenSync application initialized successfully.")
    return flask_app
