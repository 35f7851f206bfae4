"""
History Upload Batcher
======================

Pushes local sensor history in two passes, each committed as a whole:

1. Never-uploaded pass: every block with no ``uploaded_at`` is sent in
   batches of ``batch_size``. Each block is provisionally marked uploaded in
   memory before its batch is posted; the marks are persisted only after the
   last batch succeeds. A failed batch leaves every block of the pass
   unmarked, including those in batches that were already accepted.
2. Re-upload pass: blocks uploaded once and extended locally afterwards
   (day marker later than ``uploaded_at``) contribute a slice holding only
   the samples newer than their ``uploaded_at``. All slices go in one POST.

The server merges by timestamp, so re-sending an accepted batch after a
failed pass is harmless.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from greensync.domain.exceptions import DecodeError, RepositoryError, TransportError
from greensync.domain.history import HistoryBlock
from greensync.domain.results import SyncError
from greensync.schemas.history import HISTORY_TABLE, encode_history_blocks
from greensync.services.application.settings_service import SyncSettingsService
from greensync.utils.time import utc_now
from infrastructure.database.session import StoreSession
from infrastructure.transport.api_client import Transport

logger = logging.getLogger(__name__)

UPLOADED_AT = "uploaded_at"


@dataclass
class UploadBatcher:
    transport: Transport
    settings: SyncSettingsService
    batch_size: int = 30
    clock: Callable[[], datetime] = field(default=utc_now)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")

    def _fail(self, session: StoreSession, touched: list[HistoryBlock], context: str, exc) -> SyncError:
        session.detach_all(touched)
        error = SyncError.from_exception(context, exc)
        logger.error("%s", error)
        return error

    def _commit(self, session: StoreSession, touched: list[HistoryBlock], context: str) -> Optional[SyncError]:
        try:
            session.save()
        except RepositoryError as exc:
            session.discard()
            return self._fail(session, touched, context, exc)
        session.detach_all(touched)
        return None

    def push_never_uploaded(self, session: StoreSession) -> Optional[SyncError]:
        context = f"{HISTORY_TABLE} upload"
        credentials = self.settings.credentials()
        try:
            queue = deque(session.history.never_uploaded())
        except RepositoryError as exc:
            return self._fail(session, [], context, exc)
        if not queue:
            return None

        logger.info("Uploading %d new history blocks in batches of %d", len(queue), self.batch_size)
        uploaded_at = self.clock()
        touched: list[HistoryBlock] = []
        batch_number = 0
        while queue:
            batch = [queue.popleft() for _ in range(min(self.batch_size, len(queue)))]
            batch_number += 1
            try:
                for block in batch:
                    block.decode()
                    block.uploaded_at = uploaded_at
                    session.mark_modified(block, UPLOADED_AT)
                    touched.append(block)
                self.transport.post_table(HISTORY_TABLE, encode_history_blocks(batch), credentials)
            except (TransportError, DecodeError, RepositoryError) as exc:
                logger.warning("History upload batch %d failed; no block of this pass is marked uploaded", batch_number)
                # Provisional marks leave the session unsaved.
                return self._fail(session, touched, context, exc)
            logger.debug("History upload batch %d accepted (%d blocks)", batch_number, len(batch))

        return self._commit(session, touched, context)

    def push_reedited(self, session: StoreSession) -> Optional[SyncError]:
        context = f"{HISTORY_TABLE} re-upload"
        credentials = self.settings.credentials()
        slices: list[HistoryBlock] = []
        touched: list[HistoryBlock] = []
        try:
            candidates = session.history.reuploadable()
            for block in candidates:
                block.decode()
                previous = block.uploaded_at
                if not any(sample.timestamp > previous for sample in block.data):
                    continue
                slices.append(block.slice_after(previous))
                block.uploaded_at = self.clock()
                session.mark_modified(block, UPLOADED_AT)
                touched.append(block)
        except (DecodeError, RepositoryError) as exc:
            return self._fail(session, touched, context, exc)

        if not slices:
            return None

        logger.info("Re-uploading newer samples from %d history blocks", len(slices))
        try:
            self.transport.post_table(HISTORY_TABLE, encode_history_blocks(slices), credentials)
        except TransportError as exc:
            return self._fail(session, touched, context, exc)
        return self._commit(session, touched, context)

    def push(self, session: StoreSession) -> list[SyncError]:
        try:
            if session.history.count() == 0:
                return []
        except RepositoryError as exc:
            return [SyncError.from_exception(HISTORY_TABLE, exc)]

        error = self.push_never_uploaded(session)
        if error is not None:
            return [error]
        error = self.push_reedited(session)
        if error is not None:
            return [error]
        return []
