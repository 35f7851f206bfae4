from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Iterable, TypeVar
from uuid import UUID

from pydantic import ValidationError

from greensync.domain.exceptions import RepositoryError
from greensync.schemas.entities import Device, Sensor, SyncEntity
from greensync.utils.time import to_epoch_us
from infrastructure.database.ops.entities import EntityOperations

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=SyncEntity)


class EntityRepository:
    """Facade providing typed access to reference-table rows."""

    def __init__(self, backend: EntityOperations) -> None:
        self._backend = backend

    def _to_entity(self, model: type[E], row: dict) -> E:
        try:
            return model.model_validate_json(row["payload"])
        except ValidationError as exc:
            raise RepositoryError(
                f"Stored {model.table_name} row {row['row_key']!r} is unreadable: {exc}"
            ) from exc

    def get(self, model: type[E], key: str) -> E | None:
        row = self._backend.get_entity_row(model.table_name, key)
        return self._to_entity(model, row) if row else None

    def list_all(self, model: type[E]) -> list[E]:
        return [self._to_entity(model, row) for row in self._backend.list_entity_rows(model.table_name)]

    def changed_since(self, model: type[E], since: datetime) -> list[E]:
        """Rows whose ``push_field`` timestamp is strictly after *since*."""
        if model.push_field is None:
            raise ValueError(f"{model.table_name} is never pushed")
        rows = self._backend.entity_rows_changed_since(
            model.table_name, f"{model.push_field}_us", to_epoch_us(since)
        )
        return [self._to_entity(model, row) for row in rows]

    def devices(self) -> list[Device]:
        return self.list_all(Device)

    def sensors_for_device(self, device_id: UUID) -> list[Sensor]:
        return [sensor for sensor in self.list_all(Sensor) if sensor.device_id == device_id]

    def write(self, conn: sqlite3.Connection, entities: Iterable[SyncEntity]) -> int:
        rows = []
        for entity in entities:
            created = getattr(entity, "created_at", None)
            updated = getattr(entity, "updated_at", None)
            rows.append(
                (
                    entity.table_name,
                    entity.identity_key(),
                    entity.model_dump_json(),
                    to_epoch_us(created) if created else None,
                    to_epoch_us(updated) if updated else None,
                )
            )
        if not rows:
            return 0
        return self._backend.upsert_entity_rows(conn, rows)

    def save(self, entities: Iterable[SyncEntity]) -> int:
        """Persist *entities* immediately, outside any session."""
        with self._backend.transaction() as conn:
            return self.write(conn, entities)
