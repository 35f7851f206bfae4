"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.entities import EntityRepository
from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.repositories.settings import SyncSettingsRepository

__all__ = [
    "EntityRepository",
    "HistoryRepository",
    "SyncSettingsRepository",
]
