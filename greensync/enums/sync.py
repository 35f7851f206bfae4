"""
Sync Enumerations
=================

Enums shared by the synchronization engine, its persistence layer and the
HTTP surface.
"""

from enum import Enum


class SyncPhase(str, Enum):
    """Pipeline phases, in the order the coordinator runs them."""

    PULL_REFERENCE = "pull_reference"
    PULL_HISTORY = "pull_history"
    PUSH_REFERENCE = "push_reference"
    PUSH_HISTORY = "push_history"

    def __str__(self) -> str:
        return self.value


class SyncErrorKind(str, Enum):
    """Error taxonomy for sync failures reported as values."""

    TRANSPORT = "transport"
    DECODE = "decode"
    STORE = "store"
    INTERNAL = "internal"

    def __str__(self) -> str:
        return self.value


class MergeAction(str, Enum):
    """Outcome of resolving a remote entity against its local counterpart."""

    INSERT = "insert"
    OVERWRITE = "overwrite"
    KEEP_LOCAL = "keep_local"

    def __str__(self) -> str:
        return self.value


class IdentityKind(str, Enum):
    """
    How an entity type is matched against its local counterpart.
    Declared once per entity class.
    """

    NUMERIC = "numeric"
    GUID = "guid"
    NAME = "name"

    def __str__(self) -> str:
        return self.value


class SyncEvent(str, Enum):
    """In-process event topics published by the sync coordinator."""

    TABLES_CHANGED = "tables_changed"
    SYNC_COMPLETED = "sync_completed"
