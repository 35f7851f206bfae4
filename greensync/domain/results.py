"""
Sync Results
============
Typed error and result values produced by the sync engine.

Table- and device-scoped operations never raise to their caller; failures
are reported as :class:`SyncError` values and aggregated into a
:class:`SyncResult` by the coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from greensync.domain.exceptions import DecodeError, RepositoryError, TransportError
from greensync.enums.sync import SyncErrorKind, SyncPhase


@dataclass(frozen=True)
class SyncError:
    """A failure attributed to one table, device or pass."""

    kind: SyncErrorKind
    context: str
    message: str

    @classmethod
    def from_exception(cls, context: str, exc: BaseException) -> "SyncError":
        if isinstance(exc, TransportError):
            kind = SyncErrorKind.TRANSPORT
        elif isinstance(exc, DecodeError):
            kind = SyncErrorKind.DECODE
        elif isinstance(exc, RepositoryError):
            kind = SyncErrorKind.STORE
        else:
            kind = SyncErrorKind.INTERNAL
        return cls(kind=kind, context=context, message=str(exc))

    def __str__(self) -> str:
        return f"[{self.kind}] {self.context}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "context": self.context, "message": self.message}


@dataclass
class SyncResult:
    """Outcome of one pipeline run."""

    started_at: datetime
    finished_at: datetime | None = None
    completed_phases: list[SyncPhase] = field(default_factory=list)
    failed_phase: SyncPhase | None = None
    errors: list[SyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def error_messages(self) -> list[str]:
        return [str(error) for error in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "completed_phases": [phase.value for phase in self.completed_phases],
            "failed_phase": self.failed_phase.value if self.failed_phase else None,
            "errors": [error.to_dict() for error in self.errors],
        }
