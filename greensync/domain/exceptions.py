"""Centralized exception hierarchy for GreenSync.

All domain and service exceptions inherit from :class:`GreenSyncError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``greensync/utils/http.safe_route``) maps
these to the correct HTTP status codes automatically. The sync engine never
lets them escape a table or device scope: they are converted to
:class:`~greensync.domain.results.SyncError` values there.

Hierarchy
---------
::

    GreenSyncError (base, maps to 500)
    ├── ValidationError          (400: bad input from caller)
    ├── NotFoundError            (404: entity does not exist)
    ├── DecodeError              (422: payload does not match expected shape)
    ├── ServiceError             (500: business-logic failure)
    │   ├── RepositoryError      (500: database / persistence)
    │   └── ExternalServiceError (502: third-party / network)
    │       └── TransportError   (502: greenhouse API request failed)
    └── ConfigurationError       (500: missing / invalid config)
"""

from __future__ import annotations


class GreenSyncError(Exception):
    """Base exception for all GreenSync application errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(GreenSyncError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class NotFoundError(GreenSyncError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


class DecodeError(GreenSyncError):
    """A payload could not be decoded into the expected shape (HTTP 422)."""

    http_status: int = 422

    def __init__(self, table: str, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(f"Failed to decode {table}: {message}", detail=detail)
        self.table = table


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(GreenSyncError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(ServiceError):
    """A third-party service or network call failed (HTTP 502)."""

    http_status: int = 502


class TransportError(ExternalServiceError):
    """A GET/POST against the greenhouse API failed.

    ``status_code`` is set when the server answered with a non-success
    status, and is ``None`` for connection failures and timeouts.
    """

    def __init__(
        self,
        table: str,
        message: str = "",
        *,
        status_code: int | None = None,
        detail: dict | None = None,
    ) -> None:
        super().__init__(f"Request for {table} failed: {message}", detail=detail)
        self.table = table
        self.status_code = status_code


class ConfigurationError(GreenSyncError):
    """Missing or invalid configuration value (HTTP 500)."""

    http_status: int = 500


__all__ = [
    "ConfigurationError",
    "DecodeError",
    "ExternalServiceError",
    "GreenSyncError",
    "NotFoundError",
    "RepositoryError",
    "ServiceError",
    "TransportError",
    "ValidationError",
]
