"""
Blueprint Common Utilities
==========================

Shared helpers for the API blueprints.

Usage:
    from greensync.blueprints.api._common import get_container, success
"""
from __future__ import annotations

import logging

from flask import current_app

from greensync.utils.http import success_response

logger = logging.getLogger("api._common")


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """Response envelope ``{"ok": true, "data": ..., "error": null}``."""
    return success_response(data, status, message=message)
