from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Sequence

from greensync.domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)

_HISTORY_COLUMNS = "sensor_id, day, location_id, timestamp_us, uploaded_at_us, raw_data"


class HistoryOperations:
    """SensorsHistory CRUD helpers shared across database handlers."""

    def get_history_row(self, sensor_id: str, day: str) -> dict[str, Any] | None:
        try:
            db = self.get_db()
            row = db.execute(
                f"SELECT {_HISTORY_COLUMNS} FROM SensorsHistory WHERE sensor_id = ? AND day = ?",
                (sensor_id, day),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading history block %s/%s: %s", sensor_id, day, exc)
            raise RepositoryError(f"Failed to read history block {sensor_id}/{day}: {exc}") from exc
        return dict(row) if row else None

    def latest_uploaded_history_row(self, sensor_ids: Sequence[str]) -> dict[str, Any] | None:
        """Newest block (by day marker) among *sensor_ids* that has been uploaded at least once."""
        if not sensor_ids:
            return None
        placeholders = ", ".join("?" for _ in sensor_ids)
        try:
            db = self.get_db()
            row = db.execute(
                f"""
                SELECT {_HISTORY_COLUMNS} FROM SensorsHistory
                WHERE sensor_id IN ({placeholders}) AND uploaded_at_us IS NOT NULL
                ORDER BY timestamp_us DESC
                LIMIT 1
                """,
                tuple(sensor_ids),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading latest uploaded history block: %s", exc)
            raise RepositoryError(f"Failed to read latest uploaded history block: {exc}") from exc
        return dict(row) if row else None

    def never_uploaded_history_rows(self) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            rows = db.execute(
                f"SELECT {_HISTORY_COLUMNS} FROM SensorsHistory WHERE uploaded_at_us IS NULL ORDER BY timestamp_us"
            ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error reading never-uploaded history blocks: %s", exc)
            raise RepositoryError(f"Failed to read never-uploaded history blocks: {exc}") from exc
        return [dict(row) for row in rows]

    def reuploadable_history_rows(self) -> list[dict[str, Any]]:
        """Blocks uploaded before the end of their own day, which may since have gained samples."""
        try:
            db = self.get_db()
            rows = db.execute(
                f"""
                SELECT {_HISTORY_COLUMNS} FROM SensorsHistory
                WHERE uploaded_at_us IS NOT NULL AND timestamp_us > uploaded_at_us
                ORDER BY timestamp_us
                """
            ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error reading re-uploadable history blocks: %s", exc)
            raise RepositoryError(f"Failed to read re-uploadable history blocks: {exc}") from exc
        return [dict(row) for row in rows]

    def count_history_rows(self) -> int:
        try:
            db = self.get_db()
            return int(db.execute("SELECT COUNT(*) FROM SensorsHistory").fetchone()[0])
        except sqlite3.Error as exc:
            logger.error("Error counting history blocks: %s", exc)
            raise RepositoryError(f"Failed to count history blocks: {exc}") from exc

    def upsert_history_rows(
        self,
        conn: sqlite3.Connection,
        rows: Iterable[tuple[str, str, str | None, int, int | None, bytes]],
    ) -> int:
        cursor = conn.executemany(
            f"""
            INSERT INTO SensorsHistory ({_HISTORY_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(sensor_id, day) DO UPDATE SET
                location_id = excluded.location_id,
                timestamp_us = excluded.timestamp_us,
                uploaded_at_us = excluded.uploaded_at_us,
                raw_data = excluded.raw_data
            """,
            list(rows),
        )
        return cursor.rowcount

    def update_history_uploaded_at(
        self,
        conn: sqlite3.Connection,
        rows: Iterable[tuple[int | None, str, str]],
    ) -> int:
        """Write only ``uploaded_at_us`` for ``(uploaded_at_us, sensor_id, day)`` rows."""
        cursor = conn.executemany(
            "UPDATE SensorsHistory SET uploaded_at_us = ? WHERE sensor_id = ? AND day = ?",
            list(rows),
        )
        return cursor.rowcount
