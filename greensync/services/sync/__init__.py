"""Synchronization engine between the local store and the greenhouse API."""

from greensync.services.sync.coordinator import SyncCoordinator
from greensync.services.sync.history_sync import DevicePullResult, TimeSeriesSyncer
from greensync.services.sync.reference_sync import ReferenceTableSyncer
from greensync.services.sync.telemetry import TelemetryRecorder
from greensync.services.sync.upload_batcher import UploadBatcher

__all__ = [
    "DevicePullResult",
    "ReferenceTableSyncer",
    "SyncCoordinator",
    "TelemetryRecorder",
    "TimeSeriesSyncer",
    "UploadBatcher",
]
