"""
Merge Policy
============
Last-writer-wins resolution for reference/configuration rows.

- No local match: insert the remote row.
- Editable types: overwrite only when the server copy is strictly newer
  (``remote.updated_at > local.updated_at``), otherwise keep the local row.
- Read-only types (catalog tables, crop types): the server is the sole
  authority, so the remote row always overwrites.

Timestamps are trusted as sent by the server; there is no field-level merge.
"""

from __future__ import annotations

from typing import Optional

from greensync.enums.sync import MergeAction
from greensync.schemas.entities import EditableEntity, SyncEntity


def allows_local_edits(entity: SyncEntity) -> bool:
    return isinstance(entity, EditableEntity)


def resolve(remote: SyncEntity, local: Optional[SyncEntity]) -> MergeAction:
    if local is None:
        return MergeAction.INSERT
    if allows_local_edits(remote) and allows_local_edits(local):
        if remote.updated_at > local.updated_at:
            return MergeAction.OVERWRITE
        return MergeAction.KEEP_LOCAL
    return MergeAction.OVERWRITE
