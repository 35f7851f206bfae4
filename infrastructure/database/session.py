"""
Store Session
=============

Unit of work shared by one sync pipeline run.

Objects read through the repositories are *detached*: changing them has no
effect until they are staged with :meth:`StoreSession.add`,
:meth:`StoreSession.update` or :meth:`StoreSession.mark_modified`. Staged
objects are *tracked* until they are detached or the session closes.
:meth:`StoreSession.save` writes every pending change in one transaction;
saved objects stay tracked (unchanged) and act as a read cache for later
lookups in the same session.

Usage::

    with StoreSession(database) as session:
        session.add(block)
        session.save()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Hashable, Iterable, TypeVar, Union
from uuid import UUID

from greensync.domain.exceptions import RepositoryError
from greensync.domain.history import HistoryBlock
from greensync.schemas.entities import SyncEntity
from infrastructure.database.repositories.entities import EntityRepository
from infrastructure.database.repositories.history import HistoryRepository

logger = logging.getLogger(__name__)

Tracked = Union[SyncEntity, HistoryBlock]
E = TypeVar("E", bound=SyncEntity)


class EntryState(str, Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"


@dataclass
class _Entry:
    obj: Any
    state: EntryState
    # None means every column; otherwise only these fields are written.
    fields: set[str] | None = None


def _entity_key(table_name: str, key: str) -> Hashable:
    return ("entity", table_name, key)


def _block_key(sensor_id: UUID, day: date) -> Hashable:
    return ("history", sensor_id, day)


def tracking_key(obj: Tracked) -> Hashable:
    if isinstance(obj, HistoryBlock):
        return _block_key(obj.sensor_id, obj.day)
    if isinstance(obj, SyncEntity):
        return _entity_key(obj.table_name, obj.identity_key())
    raise TypeError(f"Cannot track objects of type {type(obj).__name__}")


class StoreSession:
    """Change-tracking handle over the SQLite store."""

    def __init__(self, database) -> None:
        self._database = database
        self.entities = EntityRepository(database)
        self.history = HistoryRepository(database)
        self._entries: dict[Hashable, _Entry] = {}
        self._closed = False

    # --- Context manager -------------------------------------------------------
    def __enter__(self) -> "StoreSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Lookup ----------------------------------------------------------------
    def find_entity(self, model: type[E], key: str) -> E | None:
        """Tracked instance first, then the persisted row (detached)."""
        entry = self._entries.get(_entity_key(model.table_name, key))
        if entry is not None:
            return entry.obj
        return self.entities.get(model, key)

    def state_of(self, obj: Tracked) -> EntryState | None:
        entry = self._entries.get(tracking_key(obj))
        if entry is None or entry.obj is not obj:
            return None
        return entry.state

    # --- Staging ---------------------------------------------------------------
    def _require_open(self) -> None:
        if self._closed:
            raise RepositoryError("Store session is closed")

    def add(self, obj: Tracked) -> Tracked:
        """Stage a new row. A different object already tracked under the same key is an error."""
        self._require_open()
        key = tracking_key(obj)
        existing = self._entries.get(key)
        if existing is not None and existing.obj is not obj:
            raise RepositoryError(f"Another instance is already tracked for {key!r}; detach it first")
        self._entries[key] = _Entry(obj, EntryState.ADDED)
        return obj

    def update(self, obj: Tracked) -> Tracked:
        """Stage a full overwrite of an existing row."""
        self._require_open()
        key = tracking_key(obj)
        existing = self._entries.get(key)
        if existing is not None and existing.obj is not obj:
            raise RepositoryError(f"Another instance is already tracked for {key!r}; detach it first")
        if existing is not None and existing.state is EntryState.ADDED:
            return obj
        self._entries[key] = _Entry(obj, EntryState.MODIFIED)
        return obj

    def mark_modified(self, obj: Tracked, field_name: str) -> None:
        """Stage a write of a single field, attaching *obj* if needed."""
        self._require_open()
        key = tracking_key(obj)
        entry = self._entries.get(key)
        if entry is None or entry.obj is not obj:
            if entry is not None:
                raise RepositoryError(f"Another instance is already tracked for {key!r}; detach it first")
            self._entries[key] = _Entry(obj, EntryState.MODIFIED, {field_name})
            return
        if entry.state is EntryState.UNCHANGED:
            entry.state = EntryState.MODIFIED
            entry.fields = {field_name}
        elif entry.state is EntryState.MODIFIED and entry.fields is not None:
            entry.fields.add(field_name)

    def detach(self, obj: Tracked) -> None:
        key = tracking_key(obj)
        entry = self._entries.get(key)
        if entry is not None and entry.obj is obj:
            del self._entries[key]

    def detach_all(self, objs: Iterable[Tracked]) -> None:
        for obj in objs:
            self.detach(obj)

    # --- Persistence -----------------------------------------------------------
    @property
    def pending_count(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.state is not EntryState.UNCHANGED)

    def save(self) -> int:
        """Write all pending changes in one transaction; returns the number of rows written."""
        self._require_open()
        pending = [entry for entry in self._entries.values() if entry.state is not EntryState.UNCHANGED]
        if not pending:
            return 0

        full_entities = [e.obj for e in pending if isinstance(e.obj, SyncEntity)]
        full_blocks = [e.obj for e in pending if isinstance(e.obj, HistoryBlock) and e.fields is None]
        partial_blocks = [e.obj for e in pending if isinstance(e.obj, HistoryBlock) and e.fields is not None]
        unsupported = {f for e in pending if e.fields for f in e.fields} - {"uploaded_at"}
        if unsupported:
            raise RepositoryError(f"Partial updates are not supported for fields {sorted(unsupported)}")

        with self._database.transaction() as conn:
            self.entities.write(conn, full_entities)
            self.history.write(conn, full_blocks)
            self.history.write_uploaded_at(conn, partial_blocks)

        for entry in pending:
            entry.state = EntryState.UNCHANGED
            entry.fields = None
        logger.debug(
            "Saved %d entities, %d history blocks, %d uploaded-at updates",
            len(full_entities),
            len(full_blocks),
            len(partial_blocks),
        )
        return len(pending)

    def discard(self) -> int:
        """Drop every pending change without writing it; returns how many were dropped."""
        dropped = [key for key, entry in self._entries.items() if entry.state is not EntryState.UNCHANGED]
        for key in dropped:
            del self._entries[key]
        return len(dropped)

    def close(self) -> None:
        if self._closed:
            return
        dropped = self.discard()
        if dropped:
            logger.warning("Store session closed with %d unsaved change(s); they were discarded", dropped)
        self._entries.clear()
        self._closed = True
