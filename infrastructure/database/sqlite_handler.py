import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask

from greensync.domain.exceptions import RepositoryError
from infrastructure.database.ops.entities import EntityOperations
from infrastructure.database.ops.history import HistoryOperations
from infrastructure.database.ops.settings import SyncSettingsOperations

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class SQLiteDatabaseHandler(
    EntityOperations,
    HistoryOperations,
    SyncSettingsOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    File databases get one connection per thread. An in-memory database only
    exists inside the connection that created it, so that single connection
    is shared by every thread.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None
        self._shared_lock = threading.Lock()

        # Ensure the directory for the database file exists
        if database_path != MEMORY_DATABASE:
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        if app is not None:
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        if self._database_path == MEMORY_DATABASE:
            with self._shared_lock:
                if self._shared is None:
                    self._shared = self._open_connection()
                return self._shared

        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if self._is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    self._quarantine_corrupt_db()
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return (
            "database disk image is malformed" in message
            or "file is not a database" in message
            or "file is encrypted or is not a database" in message
            or "malformed" in message
        )

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)

        suffix = db_path.suffix or ".db"
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{suffix}"
        try:
            shutil.move(str(db_path), str(quarantined))
            for sidecar_suffix in ("-wal", "-shm"):
                sidecar = Path(f"{db_path}{sidecar_suffix}")
                if sidecar.exists():
                    sidecar_target = quarantine_dir / f"{sidecar.name}_{timestamp}"
                    shutil.move(str(sidecar), str(sidecar_target))
            logger.warning("Quarantined corrupt database to %s", quarantined)
            return quarantined
        except OSError as exc:
            logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
            return None

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection.

        - WAL mode: concurrent reads while a sync writes
        - NORMAL synchronous: faster than FULL, still safe with WAL
        - Memory temp store: avoids temp file creation
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA cache_size=-16000")  # 16MB cache (negative = KB)
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        if self._database_path == MEMORY_DATABASE:
            # Closing would drop the in-memory database; keep it until close_all().
            return
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    def close_all(self) -> None:
        with self._shared_lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None
        self.close_db()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        finally:
            conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """All statements inside the block commit together or not at all."""
        conn = self.get_db()
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Transaction rolled back: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        try:
            with self.connection() as db:
                # Reference/configuration rows stored as JSON documents
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS EntityRecords (
                        table_name TEXT NOT NULL,
                        row_key TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        created_at_us INTEGER,
                        updated_at_us INTEGER,
                        PRIMARY KEY (table_name, row_key)
                    )
                    """
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_entity_records_updated ON EntityRecords(table_name, updated_at_us)"
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_entity_records_created ON EntityRecords(table_name, created_at_us)"
                )

                # One block per (sensor, day)
                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SensorsHistory (
                        sensor_id TEXT NOT NULL,
                        day TEXT NOT NULL,
                        location_id TEXT,
                        timestamp_us INTEGER NOT NULL,
                        uploaded_at_us INTEGER,
                        raw_data BLOB NOT NULL,
                        PRIMARY KEY (sensor_id, day)
                    )
                    """
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_sensors_history_uploaded ON SensorsHistory(uploaded_at_us)"
                )
                db.execute(
                    "CREATE INDEX IF NOT EXISTS idx_sensors_history_timestamp ON SensorsHistory(sensor_id, timestamp_us DESC)"
                )

                db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SyncSettings (
                        key TEXT PRIMARY KEY,
                        value TEXT
                    )
                    """
                )
            logger.info("Database tables ready at %s", self._database_path)
        except sqlite3.Error as exc:
            logger.error("Failed to create tables: %s", exc)
            raise RepositoryError(f"Failed to create tables: {exc}") from exc
