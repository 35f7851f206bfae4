from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable

from greensync.domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)

_ENTITY_COLUMNS = "table_name, row_key, payload, created_at_us, updated_at_us"


class EntityOperations:
    """Reference-table rows stored as JSON documents keyed by (table, identity key)."""

    def get_entity_row(self, table_name: str, row_key: str) -> dict[str, Any] | None:
        try:
            db = self.get_db()
            row = db.execute(
                f"SELECT {_ENTITY_COLUMNS} FROM EntityRecords WHERE table_name = ? AND row_key = ?",
                (table_name, row_key),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error reading %s row %s: %s", table_name, row_key, exc)
            raise RepositoryError(f"Failed to read {table_name} row {row_key!r}: {exc}") from exc
        return dict(row) if row else None

    def list_entity_rows(self, table_name: str) -> list[dict[str, Any]]:
        try:
            db = self.get_db()
            rows = db.execute(
                f"SELECT {_ENTITY_COLUMNS} FROM EntityRecords WHERE table_name = ? ORDER BY row_key",
                (table_name,),
            ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error listing %s rows: %s", table_name, exc)
            raise RepositoryError(f"Failed to list {table_name} rows: {exc}") from exc
        return [dict(row) for row in rows]

    def entity_rows_changed_since(self, table_name: str, column: str, since_us: int) -> list[dict[str, Any]]:
        if column not in {"created_at_us", "updated_at_us"}:
            raise ValueError(f"Unsupported change column {column!r}")
        try:
            db = self.get_db()
            rows = db.execute(
                f"SELECT {_ENTITY_COLUMNS} FROM EntityRecords "
                f"WHERE table_name = ? AND {column} > ? ORDER BY {column}",
                (table_name, since_us),
            ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Error reading changed %s rows: %s", table_name, exc)
            raise RepositoryError(f"Failed to read changed {table_name} rows: {exc}") from exc
        return [dict(row) for row in rows]

    def upsert_entity_rows(
        self,
        conn: sqlite3.Connection,
        rows: Iterable[tuple[str, str, str, int | None, int | None]],
    ) -> int:
        """Insert or replace ``(table_name, row_key, payload, created_at_us, updated_at_us)`` rows."""
        cursor = conn.executemany(
            """
            INSERT INTO EntityRecords (table_name, row_key, payload, created_at_us, updated_at_us)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(table_name, row_key) DO UPDATE SET
                payload = excluded.payload,
                created_at_us = excluded.created_at_us,
                updated_at_us = excluded.updated_at_us
            """,
            list(rows),
        )
        return cursor.rowcount
