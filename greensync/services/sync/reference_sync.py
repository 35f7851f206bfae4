"""
Reference Table Sync
====================

Download-and-merge and upload-if-changed logic for the reference and
configuration tables.

Pull runs in two committed stages because later tables reference earlier
ones:

1. Catalog tables (no credentials): parameters, placements, subsystems,
   relay types, sensor types. Saved only if every one of them succeeded.
2. Mergeable tables: people, crop types, locations, crop cycles, devices,
   relays, sensors. Saved only if every one of them succeeded.

The "last successful pull" watermark advances to the time sampled at the
start of the phase only when both stages succeed.

Push posts, per table, every local row changed since the last successful
push; the push watermark advances only when every table succeeded.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from greensync.domain.exceptions import DecodeError, RepositoryError, TransportError
from greensync.domain.results import SyncError
from greensync.enums.sync import MergeAction
from greensync.schemas.entities import (
    ANONYMOUS_TABLES,
    CATALOG_TABLES,
    MERGEABLE_TABLES,
    PUSH_TABLES,
    SyncEntity,
    decode_table,
    encode_entities,
)
from greensync.services.application.settings_service import SyncSettingsService
from greensync.services.sync import merge_policy
from greensync.utils.time import utc_now
from infrastructure.database.session import StoreSession
from infrastructure.transport.api_client import Credentials, Transport

logger = logging.getLogger(__name__)


@dataclass
class ReferenceTableSyncer:
    transport: Transport
    settings: SyncSettingsService
    clock: Callable[[], datetime] = field(default=utc_now)

    # --- Pull ------------------------------------------------------------------
    def sync_table(
        self,
        session: StoreSession,
        model: type[SyncEntity],
        credentials: Optional[Credentials] = None,
    ) -> Optional[SyncError]:
        """Request, decode and merge one table. Returns ``None`` on success."""
        name = model.table_name
        try:
            raw = self.transport.get_table(name, credentials)
            remote_rows = decode_table(model, raw)
            logger.info("Deserialised %d for %s", len(remote_rows), name)
            outcome = self.merge_rows(session, model, remote_rows)
        except (TransportError, DecodeError, RepositoryError) as exc:
            error = SyncError.from_exception(name, exc)
            logger.error("%s", error)
            return error

        logger.debug(
            "%s merged: %d inserted, %d overwritten, %d kept",
            name,
            outcome[MergeAction.INSERT],
            outcome[MergeAction.OVERWRITE],
            outcome[MergeAction.KEEP_LOCAL],
        )
        return None

    def merge_rows(
        self,
        session: StoreSession,
        model: type[SyncEntity],
        remote_rows: Iterable[SyncEntity],
    ) -> Counter:
        outcome: Counter = Counter()
        for remote in remote_rows:
            local = session.find_entity(model, remote.identity_key())
            action = merge_policy.resolve(remote, local)
            outcome[action] += 1

            if action is MergeAction.INSERT:
                session.add(remote)
            elif action is MergeAction.OVERWRITE:
                # The row found may be the one staged earlier in this session.
                session.detach(local)
                session.update(remote)
        return outcome

    def _sync_stage(
        self,
        session: StoreSession,
        models: Sequence[type[SyncEntity]],
        credentials: Optional[Credentials],
    ) -> list[SyncError]:
        errors: list[SyncError] = []
        for model in models:
            table_credentials = None if model.table_name in ANONYMOUS_TABLES else credentials
            error = self.sync_table(session, model, table_credentials)
            if error is not None:
                errors.append(error)
        return errors

    def _save(self, session: StoreSession, context: str) -> Optional[SyncError]:
        try:
            session.save()
        except RepositoryError as exc:
            session.discard()
            error = SyncError.from_exception(context, exc)
            logger.error("%s", error)
            return error
        return None

    def pull(self, session: StoreSession) -> list[SyncError]:
        started_at = self.clock()
        credentials = self.settings.credentials()
        if credentials is None:
            logger.warning("No API credentials stored; user tables will be requested anonymously")

        errors = self._sync_stage(session, CATALOG_TABLES, None)
        if errors:
            session.discard()
            return errors
        error = self._save(session, "catalog tables")
        if error is not None:
            return [error]

        errors = self._sync_stage(session, MERGEABLE_TABLES, credentials)
        if errors:
            session.discard()
            return errors
        error = self._save(session, "user tables")
        if error is not None:
            return [error]

        self.settings.last_successful_get = started_at
        return []

    # --- Push ------------------------------------------------------------------
    def push_table(
        self,
        session: StoreSession,
        model: type[SyncEntity],
        since: datetime,
        credentials: Optional[Credentials],
    ) -> Optional[SyncError]:
        """Post rows of *model* changed after *since*; nothing to post is a success."""
        name = model.table_name
        try:
            edited = session.entities.changed_since(model, since)
            if not edited:
                return None
            logger.info("Posting %d changed %s", len(edited), name)
            self.transport.post_table(name, encode_entities(edited), credentials)
        except (TransportError, RepositoryError) as exc:
            error = SyncError.from_exception(name, exc)
            logger.error("%s", error)
            return error
        return None

    def push(self, session: StoreSession) -> list[SyncError]:
        credentials = self.settings.credentials()
        last_post = self.settings.last_successful_post
        post_time = self.clock()

        errors = []
        for model in PUSH_TABLES:
            error = self.push_table(session, model, last_post, credentials)
            if error is not None:
                errors.append(error)

        if not errors:
            self.settings.last_successful_post = post_time
        return errors
