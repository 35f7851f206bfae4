"""
Enums Module
============

Enumeration types for the GreenSync application.
"""

from greensync.enums.sync import (
    IdentityKind,
    MergeAction,
    SyncErrorKind,
    SyncEvent,
    SyncPhase,
)

__all__ = [
    "IdentityKind",
    "MergeAction",
    "SyncErrorKind",
    "SyncEvent",
    "SyncPhase",
]
