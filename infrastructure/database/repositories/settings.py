from __future__ import annotations

from datetime import datetime

from greensync.utils.time import coerce_datetime
from infrastructure.database.ops.settings import SyncSettingsOperations


class SyncSettingsRepository:
    """Facade providing typed access to persisted sync settings."""

    def __init__(self, backend: SyncSettingsOperations) -> None:
        self._backend = backend

    # Raw ---------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        return self._backend.get_sync_setting(key)

    def set(self, key: str, value: str | None) -> None:
        self._backend.set_sync_setting(key, value)

    # Timestamps --------------------------------------------------------------
    def get_timestamp(self, key: str) -> datetime | None:
        return coerce_datetime(self._backend.get_sync_setting(key))

    def set_timestamp(self, key: str, value: datetime) -> None:
        self._backend.set_sync_setting(key, value.isoformat())
