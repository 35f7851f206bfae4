"""
Shared test fixtures for the GreenSync test suite.

Provides:
- In-memory SQLite database with all tables created
- Repository instances wired to the test database
- A scripted fake transport standing in for the greenhouse API
- A controllable clock
- Builders for devices, sensors and history blocks

Usage:
    def test_example(session, fake_transport, seed_device):
        device, sensors = seed_device(sensors=1)
        fake_transport.script_history(device.id, [...])
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import pytest

# Ensure repository root is on sys.path so tests can import application modules
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from greensync.domain.exceptions import TransportError
from greensync.domain.history import HistoryBlock, Sample
from greensync.schemas.entities import Device, Location, Sensor
from greensync.schemas.history import HISTORY_TABLE, encode_history_blocks
from greensync.services.application.settings_service import SyncSettingsService
from infrastructure.database.repositories.entities import EntityRepository
from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.repositories.settings import SyncSettingsRepository
from infrastructure.database.session import StoreSession
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)

UTC = timezone.utc
T0 = datetime(2024, 1, 1, tzinfo=UTC)


def at(day: int, hour: int = 0, minute: int = 0, *, month: int = 1) -> datetime:
    """UTC instant in 2024, e.g. ``at(2, 10, 5)`` is Jan 2 10:05."""
    return datetime(2024, month, day, hour, minute, tzinfo=UTC)


# ========================== Fakes ==========================================


class FakeClock:
    """Callable clock returning a fixed instant until advanced."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTransport:
    """Scripted stand-in for the greenhouse API.

    GET responses are queued per table name. A queue registered for a prefix
    (e.g. ``SensorsHistory/<device>``) answers every table name starting with
    it; the longest matching key wins. Each response is consumed once; an
    exhausted or missing queue answers ``"[]"``. Queued exceptions are raised.
    """

    def __init__(self) -> None:
        self.responses: dict[str, list[Any]] = {}
        self.gets: list[tuple[str, Any]] = []
        self.posts: list[tuple[str, str, Any]] = []
        self.fail_post_at: Optional[int] = None

    # Scripting -------------------------------------------------------------
    def script(self, table_name: str, *responses: Any) -> None:
        self.responses.setdefault(table_name, []).extend(responses)

    def script_history(self, device_id: uuid.UUID, *pages: Iterable[HistoryBlock]) -> None:
        self.script(f"{HISTORY_TABLE}/{device_id}", *(encode_history_blocks(list(page)) for page in pages))

    # Transport -------------------------------------------------------------
    def _queue_for(self, table_name: str) -> list[Any] | None:
        matches = [key for key in self.responses if table_name == key or table_name.startswith(key + "/")]
        if not matches:
            return None
        return self.responses[max(matches, key=len)]

    def get_table(self, table_name: str, credentials=None) -> str:
        self.gets.append((table_name, credentials))
        queue = self._queue_for(table_name)
        if not queue:
            return "[]"
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post_table(self, table_name: str, payload: str, credentials) -> None:
        self.posts.append((table_name, payload, credentials))
        if self.fail_post_at is not None and len(self.posts) == self.fail_post_at:
            raise TransportError(table_name, "HTTP 503 Service Unavailable", status_code=503)

    # Inspection ------------------------------------------------------------
    def get_names(self) -> list[str]:
        return [name for name, _ in self.gets]

    def history_gets(self) -> list[str]:
        return [name for name in self.get_names() if name.startswith(HISTORY_TABLE)]


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_all()


@pytest.fixture()
def entity_repo(db_handler):
    return EntityRepository(db_handler)


@pytest.fixture()
def history_repo(db_handler):
    return HistoryRepository(db_handler)


@pytest.fixture()
def settings_repo(db_handler):
    return SyncSettingsRepository(db_handler)


@pytest.fixture()
def settings_service(settings_repo):
    """Settings with API credentials stored."""
    service = SyncSettingsService(settings_repo)
    service.set_credentials(user_id="7", token="secret-token")
    return service


@pytest.fixture()
def session(db_handler):
    with StoreSession(db_handler) as store_session:
        yield store_session


# ========================== Fake Collaborators =============================


@pytest.fixture()
def fake_transport():
    return FakeTransport()


@pytest.fixture()
def clock():
    return FakeClock(at(3, 12))


# ========================== Builders =======================================


def make_location(name: str = "North house", *, updated_at: datetime = T0, **fields: Any) -> Location:
    return Location(id=fields.pop("id", uuid.uuid4()), name=name, created_at=T0, updated_at=updated_at, **fields)


def make_device(name: str = "Controller A", *, updated_at: datetime = T0, **fields: Any) -> Device:
    return Device(id=fields.pop("id", uuid.uuid4()), name=name, created_at=T0, updated_at=updated_at, **fields)


def make_sensor(device_id: uuid.UUID, *, sensor_type_id: int = 1, updated_at: datetime = T0, **fields: Any) -> Sensor:
    return Sensor(
        id=fields.pop("id", uuid.uuid4()),
        device_id=device_id,
        sensor_type_id=sensor_type_id,
        created_at=T0,
        updated_at=updated_at,
        **fields,
    )


def make_block(
    sensor_id: uuid.UUID,
    day: date,
    samples: Iterable[tuple[datetime, float]],
    *,
    location_id: uuid.UUID | None = None,
    uploaded_at: datetime | None = None,
) -> HistoryBlock:
    """Encoded block with both representations populated."""
    block = HistoryBlock.for_day(sensor_id, location_id, day, [Sample(ts, value) for ts, value in samples])
    block.uploaded_at = uploaded_at
    return block


@pytest.fixture()
def seed_device(entity_repo):
    """Persist a device with *sensors* sensors; returns ``(device, [sensor, ...])``."""

    def _seed(name: str = "Controller A", sensors: int = 1) -> tuple[Device, list[Sensor]]:
        device = make_device(name)
        device_sensors = [make_sensor(device.id) for _ in range(sensors)]
        entity_repo.save([device, *device_sensors])
        return device, device_sensors

    return _seed
