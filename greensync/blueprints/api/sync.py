"""
Sync API
========

Endpoints to trigger and inspect synchronization with the greenhouse API.

- ``POST /api/sync``: queue a sync run (``?wait=1`` waits and returns its result)
- ``GET /api/sync/status``: coordinator state, stored watermarks and last result
- ``GET /api/sync/devices/<device_id>/watermark``: resume point of a device's history pull
"""

from __future__ import annotations

import logging
from uuid import UUID

from flask import Blueprint, request

from greensync.blueprints.api._common import get_container, success
from greensync.domain.exceptions import NotFoundError, ValidationError
from greensync.schemas.entities import Device
from greensync.utils.http import safe_route
from greensync.utils.time import unix_seconds
from infrastructure.database.session import StoreSession

logger = logging.getLogger(__name__)

sync_api = Blueprint("sync_api", __name__)

_TRUTHY = {"1", "true", "yes", "on"}


@sync_api.post("")
@safe_route("Failed to run sync")
def trigger_sync():
    """Queue a sync run.

    Query Parameters:
        wait: when truthy, block until the run finishes and return its result.
        timeout: seconds to wait (only with ``wait``).
    """
    coordinator = get_container().coordinator
    wait = request.args.get("wait", "").lower() in _TRUTHY

    if not wait:
        coordinator.request_sync()
        return success({"queued": True, "status": coordinator.status()}, 202, message="Sync queued")

    timeout = request.args.get("timeout", type=float)
    result = coordinator.sync(timeout=timeout)
    return success(result.to_dict())


@sync_api.get("/status")
@safe_route("Failed to read sync status")
def get_status():
    container = get_container()
    data = container.coordinator.status()
    data["settings"] = container.settings_service.snapshot()
    return success(data)


@sync_api.get("/devices/<device_id>/watermark")
@safe_route("Failed to compute device watermark")
def get_device_watermark(device_id: str):
    try:
        device_uuid = UUID(device_id)
    except ValueError:
        raise ValidationError(f"Invalid device id: {device_id}") from None

    container = get_container()
    device = container.entity_repo.get(Device, str(device_uuid))
    if device is None:
        raise NotFoundError(f"Device {device_id} not found")

    with StoreSession(container.database) as session:
        watermark = container.coordinator.history_syncer.device_watermark(session, device)
    return success(
        {
            "device_id": str(device.id),
            "device_name": device.name,
            "watermark": watermark.isoformat(),
            "unix_seconds": unix_seconds(watermark),
        }
    )
