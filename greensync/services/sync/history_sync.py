"""
Sensor History Sync
===================

Device-scoped, day-block download/merge/resume for sensor telemetry.

For each device the syncer derives a resume watermark from the persisted
history, then pages through ``SensorsHistory/{device}/{unixSeconds}/{maxDays}``
until the server returns an empty page. Each remote block is merged into the
single local block for the same (sensor, day):

- no local block: the remote block is normalised (encoded) and inserted;
- local block exists: samples are merged by timestamp, the remote reading
  winning on collision, and the merged payload replaces the local one.

A day at the edge of a page may be delivered again by the next page. Blocks
staged earlier in the device loop are therefore detached and replaced rather
than added a second time, which keeps one block per (sensor, day).

Every page request carries the stored API credentials.

Everything staged for a device is saved once its loop ends. A transport
failure, an undecodable page or an unreadable stored block stops that device
only, and what was staged before the failure is still saved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import UUID

from greensync.domain.exceptions import DecodeError, RepositoryError, TransportError
from greensync.domain.history import HistoryBlock, merge_samples
from greensync.domain.results import SyncError
from greensync.schemas.entities import Device
from greensync.schemas.history import HISTORY_TABLE, decode_history_page
from greensync.services.application.settings_service import SyncSettingsService
from greensync.utils.time import EPOCH, unix_seconds
from infrastructure.database.session import EntryState, StoreSession
from infrastructure.transport.api_client import Credentials, Transport

logger = logging.getLogger(__name__)


@dataclass
class DevicePullResult:
    """Counters for one device's download loop."""

    device_id: UUID
    watermark: datetime
    pages: int = 0
    inserted: int = 0
    merged: int = 0
    unchanged: int = 0
    error: Optional[SyncError] = None


@dataclass
class TimeSeriesSyncer:
    transport: Transport
    settings: SyncSettingsService
    max_days_per_request: int = 15
    _last_results: dict[UUID, DevicePullResult] = field(default_factory=dict, init=False, repr=False)

    # --- Watermark -------------------------------------------------------------
    def device_watermark(self, session: StoreSession, device: Device) -> datetime:
        """Resume point for *device*: latest sample of its most recent uploaded block.

        Only blocks the server has seen (``uploaded_at`` set) count, so a block
        captured locally but never uploaded does not move the resume point.
        """
        sensor_ids = [sensor.id for sensor in session.entities.sensors_for_device(device.id)]
        if not sensor_ids:
            return EPOCH

        block = session.history.latest_uploaded_block(sensor_ids)
        if block is None:
            return EPOCH

        block.decode()
        latest = block.latest_sample_time()
        if latest is None:
            logger.error(
                "Latest uploaded history block for device %s (%s, %s) has no samples; resuming from its day start",
                device.name,
                block.sensor_id,
                block.day,
            )
            return block.timestamp - timedelta(days=1)
        return latest

    def page_table_name(self, device_id: UUID, watermark: datetime) -> str:
        return f"{HISTORY_TABLE}/{device_id}/{unix_seconds(watermark)}/{self.max_days_per_request}"

    # --- Merge -----------------------------------------------------------------
    def merge_block(
        self,
        session: StoreSession,
        remote: HistoryBlock,
        working: dict[tuple[UUID, date], HistoryBlock],
        result: DevicePullResult,
    ) -> None:
        staged = working.pop(remote.key, None)
        staged_state = None
        if staged is not None:
            staged_state = session.state_of(staged)
            session.detach(staged)
            local = staged
        else:
            local = session.history.get_block(remote.sensor_id, remote.day)

        if local is None:
            remote.encode()
            session.add(remote)
            working[remote.key] = remote
            result.inserted += 1
            logger.debug("Inserted history block %s/%s (%d samples)", remote.sensor_id, remote.day, len(remote.data))
            return

        if local.data is None:
            local.decode()
        merged = merge_samples(local.data, remote.data)

        if staged is None and merged == local.data and local.location_id == remote.location_id:
            result.unchanged += 1
            return

        local.location_id = remote.location_id
        local.data = merged
        local.encode()
        if staged_state is EntryState.ADDED:
            session.add(local)
        else:
            session.update(local)
        working[remote.key] = local
        result.merged += 1
        logger.debug("Merged history block %s/%s (%d samples)", local.sensor_id, local.day, len(merged))
    # --- Pull ------------------------------------------------------------------
    def pull_device(
        self,
        session: StoreSession,
        device: Device,
        credentials: Optional[Credentials] = None,
    ) -> DevicePullResult:
        context = f"{HISTORY_TABLE} for device {device.name}"
        try:
            watermark = self.device_watermark(session, device)
        except (DecodeError, RepositoryError) as exc:
            result = DevicePullResult(device_id=device.id, watermark=EPOCH)
            result.error = SyncError.from_exception(context, exc)
            logger.error("%s", result.error)
            return result

        result = DevicePullResult(device_id=device.id, watermark=watermark)
        working: dict[tuple[UUID, date], HistoryBlock] = {}

        while True:
            table_name = self.page_table_name(device.id, watermark)
            try:
                raw = self.transport.get_table(table_name, credentials)
                page = decode_history_page(raw)
            except (TransportError, DecodeError) as exc:
                result.error = SyncError.from_exception(context, exc)
                logger.error("%s", result.error)
                break

            if not page:
                break
            result.pages += 1
            logger.info("Downloaded %d history blocks for device %s (page %d)", len(page), device.name, result.pages)

            page_max: Optional[datetime] = None
            try:
                for remote in page:
                    latest = remote.latest_sample_time()
                    if latest is not None and (page_max is None or latest > page_max):
                        page_max = latest
                    self.merge_block(session, remote, working, result)
            except (DecodeError, RepositoryError) as exc:
                result.error = SyncError.from_exception(context, exc)
                logger.error("%s", result.error)
                break

            if page_max is None or page_max <= watermark:
                logger.warning(
                    "History page for device %s did not advance past %s; stopping",
                    device.name,
                    watermark.isoformat(),
                )
                break
            watermark = page_max
            result.watermark = watermark

        logger.debug("Saving %d staged history blocks for device %s", session.pending_count, device.name)
        try:
            session.save()
        except RepositoryError as exc:
            session.discard()
            result.error = SyncError.from_exception(context, exc)
            logger.error("%s", result.error)
        session.detach_all(list(working.values()))
        return result

    def pull(self, session: StoreSession) -> list[SyncError]:
        self._last_results = {}
        try:
            devices = session.entities.devices()
        except RepositoryError as exc:
            error = SyncError.from_exception(HISTORY_TABLE, exc)
            logger.error("%s", error)
            return [error]

        credentials = self.settings.credentials()
        errors: list[SyncError] = []
        for device in devices:
            result = self.pull_device(session, device, credentials)
            self._last_results[device.id] = result
            if result.error is not None:
                errors.append(result.error)
        return errors

    @property
    def last_results(self) -> dict[UUID, DevicePullResult]:
        return dict(self._last_results)
