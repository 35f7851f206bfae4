"""
Sync Coordinator
================

Single entry point of the sync engine.

Every store-mutating job (a sync run, a telemetry capture) is submitted to
one FIFO queue drained by a single worker thread, so jobs run strictly in
submission order and never concurrently. Callers get a
:class:`concurrent.futures.Future` and are never blocked by the queue itself.

A sync run opens one :class:`StoreSession` shared by all phases and closes it
at the end whatever the outcome. Phases run in a fixed order::

    pull_reference -> pull_history -> push_reference -> push_history

The first phase that reports errors stops the run; work committed by earlier
phases stays committed and the next run resumes from persisted state. An
exception escaping a phase is recorded as an ``internal`` error of that phase,
so a run always ends with a :class:`SyncResult`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from greensync.domain.results import SyncError, SyncResult
from greensync.enums.sync import SyncEvent, SyncPhase
from greensync.services.application.settings_service import SyncSettingsService
from greensync.services.sync.history_sync import TimeSeriesSyncer
from greensync.services.sync.reference_sync import ReferenceTableSyncer
from greensync.services.sync.upload_batcher import UploadBatcher
from greensync.utils.event_bus import EventBus
from greensync.utils.time import utc_now
from infrastructure.database.session import StoreSession
from infrastructure.transport.api_client import Transport

logger = logging.getLogger(__name__)

_PULL_PHASES = frozenset({SyncPhase.PULL_REFERENCE, SyncPhase.PULL_HISTORY})


class SyncCoordinator:
    """Serialises sync runs and other store jobs onto one worker thread."""

    def __init__(
        self,
        database,
        transport: Transport,
        settings_service: SyncSettingsService,
        *,
        max_days_per_request: int = 15,
        upload_batch_size: int = 30,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.database = database
        self.settings_service = settings_service
        self.event_bus = event_bus
        self.clock = clock

        self.reference_syncer = ReferenceTableSyncer(transport, settings_service, clock=clock)
        self.history_syncer = TimeSeriesSyncer(
            transport, settings_service, max_days_per_request=max_days_per_request
        )
        self.upload_batcher = UploadBatcher(transport, settings_service, batch_size=upload_batch_size, clock=clock)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="greensync-sync")
        self._lock = threading.Lock()
        self._pending = 0
        self._syncing = False
        self._last_started_at: Optional[datetime] = None
        self._last_result: Optional[SyncResult] = None

    # --- Queue -----------------------------------------------------------------
    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Append a job to the queue; it runs after every job submitted before it."""
        with self._lock:
            self._pending += 1

        def run() -> Any:
            with self._lock:
                self._pending -= 1
            return fn(*args, **kwargs)

        return self._executor.submit(run)

    def request_sync(self) -> "Future[SyncResult]":
        """Queue a sync run and return immediately."""
        return self.submit(self._run_pipeline)

    def sync(self, timeout: Optional[float] = None) -> SyncResult:
        """Queue a sync run and wait for its result."""
        return self.request_sync().result(timeout=timeout)

    # --- Pipeline --------------------------------------------------------------
    def _phases(self) -> list[tuple[SyncPhase, Callable[[StoreSession], list[SyncError]]]]:
        return [
            (SyncPhase.PULL_REFERENCE, self.reference_syncer.pull),
            (SyncPhase.PULL_HISTORY, self.history_syncer.pull),
            (SyncPhase.PUSH_REFERENCE, self.reference_syncer.push),
            (SyncPhase.PUSH_HISTORY, self.upload_batcher.push),
        ]

    def _publish(self, event: SyncEvent, payload: Any) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event, payload)

    def _run_pipeline(self) -> SyncResult:
        result = SyncResult(started_at=self.clock())
        with self._lock:
            self._syncing = True
            self._last_started_at = result.started_at
        logger.info("Sync started")

        try:
            with StoreSession(self.database) as session:
                for phase, run_phase in self._phases():
                    try:
                        errors = run_phase(session)
                    except Exception as exc:
                        logger.exception("Unexpected failure in %s", phase)
                        errors = [SyncError.from_exception(str(phase), exc)]
                    if phase in _PULL_PHASES:
                        self._publish(SyncEvent.TABLES_CHANGED, {"phase": phase.value})
                    if errors:
                        result.failed_phase = phase
                        result.errors.extend(errors)
                        logger.error(
                            "Sync stopped in %s: %s", phase, ", ".join(result.error_messages())
                        )
                        break
                    result.completed_phases.append(phase)
        finally:
            result.finished_at = self.clock()
            with self._lock:
                self._syncing = False
                self._last_result = result

        if result.ok:
            logger.info("Sync finished")
        self._publish(SyncEvent.SYNC_COMPLETED, result.to_dict())
        return result

    # --- Introspection ---------------------------------------------------------
    def status(self) -> Dict[str, Any]:
        with self._lock:
            last = self._last_result
            return {
                "syncing": self._syncing,
                "pending": self._pending,
                "last_started_at": self._last_started_at.isoformat() if self._last_started_at else None,
                "last_finished_at": last.finished_at.isoformat() if last and last.finished_at else None,
                "last_result": last.to_dict() if last else None,
            }

    @property
    def last_result(self) -> Optional[SyncResult]:
        with self._lock:
            return self._last_result

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Sync coordinator stopped")
