"""
Domain Package
==============
Value objects, result types and the exception hierarchy of the sync engine.
"""

from .exceptions import (
    ConfigurationError,
    DecodeError,
    ExternalServiceError,
    GreenSyncError,
    NotFoundError,
    RepositoryError,
    ServiceError,
    TransportError,
    ValidationError,
)
from .history import HistoryBlock, Sample, decode_samples, encode_samples, merge_samples
from .results import SyncError, SyncResult

__all__ = [
    # Errors
    "ConfigurationError",
    "DecodeError",
    "ExternalServiceError",
    "GreenSyncError",
    "NotFoundError",
    "RepositoryError",
    "ServiceError",
    "TransportError",
    "ValidationError",
    # History
    "HistoryBlock",
    "Sample",
    "decode_samples",
    "encode_samples",
    "merge_samples",
    # Results
    "SyncError",
    "SyncResult",
]
