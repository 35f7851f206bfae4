from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Iterable, Sequence
from uuid import UUID

from greensync.domain.history import HistoryBlock
from greensync.utils.time import from_epoch_us, to_epoch_us
from infrastructure.database.ops.history import HistoryOperations

logger = logging.getLogger(__name__)


class HistoryRepository:
    """Facade mapping SensorsHistory rows to :class:`HistoryBlock` values.

    Blocks are returned encoded; callers decode explicitly.
    """

    def __init__(self, backend: HistoryOperations) -> None:
        self._backend = backend

    @staticmethod
    def _to_block(row: dict) -> HistoryBlock:
        uploaded = row["uploaded_at_us"]
        return HistoryBlock(
            sensor_id=UUID(row["sensor_id"]),
            location_id=UUID(row["location_id"]) if row["location_id"] else None,
            timestamp=from_epoch_us(row["timestamp_us"]),
            uploaded_at=from_epoch_us(uploaded) if uploaded is not None else None,
            raw_data=bytes(row["raw_data"]),
        )

    @staticmethod
    def _row_key(block: HistoryBlock) -> tuple[str, str]:
        return str(block.sensor_id), block.day.isoformat()

    def get_block(self, sensor_id: UUID, day: date) -> HistoryBlock | None:
        row = self._backend.get_history_row(str(sensor_id), day.isoformat())
        return self._to_block(row) if row else None

    def latest_uploaded_block(self, sensor_ids: Sequence[UUID]) -> HistoryBlock | None:
        row = self._backend.latest_uploaded_history_row([str(sensor_id) for sensor_id in sensor_ids])
        return self._to_block(row) if row else None

    def never_uploaded(self) -> list[HistoryBlock]:
        return [self._to_block(row) for row in self._backend.never_uploaded_history_rows()]

    def reuploadable(self) -> list[HistoryBlock]:
        return [self._to_block(row) for row in self._backend.reuploadable_history_rows()]

    def count(self) -> int:
        return self._backend.count_history_rows()

    def write(self, conn: sqlite3.Connection, blocks: Iterable[HistoryBlock]) -> int:
        rows = []
        for block in blocks:
            sensor_id, day = self._row_key(block)
            rows.append(
                (
                    sensor_id,
                    day,
                    str(block.location_id) if block.location_id else None,
                    to_epoch_us(block.timestamp),
                    to_epoch_us(block.uploaded_at) if block.uploaded_at else None,
                    block.raw_data,
                )
            )
        if not rows:
            return 0
        return self._backend.upsert_history_rows(conn, rows)

    def write_uploaded_at(self, conn: sqlite3.Connection, blocks: Iterable[HistoryBlock]) -> int:
        rows = [
            (to_epoch_us(block.uploaded_at) if block.uploaded_at else None, *self._row_key(block))
            for block in blocks
        ]
        if not rows:
            return 0
        return self._backend.update_history_uploaded_at(conn, rows)

    def save(self, blocks: Iterable[HistoryBlock]) -> int:
        """Persist *blocks* immediately, outside any session."""
        with self._backend.transaction() as conn:
            return self.write(conn, blocks)
