from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from greensync.config import AppConfig
from greensync.services.application.settings_service import SyncSettingsService
from greensync.services.sync.coordinator import SyncCoordinator
from greensync.services.sync.telemetry import TelemetryRecorder
from greensync.utils.event_bus import EventBus
from infrastructure.database.repositories.entities import EntityRepository
from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.repositories.settings import SyncSettingsRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.transport.api_client import GreenhouseApiClient, Transport

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the sync engine and its collaborators."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    entity_repo: EntityRepository
    history_repo: HistoryRepository
    settings_repo: SyncSettingsRepository
    settings_service: SyncSettingsService
    transport: Transport
    event_bus: EventBus
    coordinator: SyncCoordinator
    telemetry: TelemetryRecorder

    @classmethod
    def build(cls, config: AppConfig, *, transport: Optional[Transport] = None) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            transport: Transport to use instead of the HTTP client (tests, offline tools)
        """
        logger.info("Building ServiceContainer...")
        database = SQLiteDatabaseHandler(config.database_path)
        database.create_tables()

        entity_repo = EntityRepository(database)
        history_repo = HistoryRepository(database)
        settings_repo = SyncSettingsRepository(database)
        settings_service = SyncSettingsService(settings_repo)

        if transport is None:
            transport = GreenhouseApiClient(config.api_url, timeout=config.request_timeout_seconds)

        event_bus = EventBus()
        coordinator = SyncCoordinator(
            database,
            transport,
            settings_service,
            max_days_per_request=config.max_days_per_request,
            upload_batch_size=config.upload_batch_size,
            event_bus=event_bus,
        )
        telemetry = TelemetryRecorder(coordinator, history_repo)

        logger.info("ServiceContainer built successfully.")
        return cls(
            config=config,
            database=database,
            entity_repo=entity_repo,
            history_repo=history_repo,
            settings_repo=settings_repo,
            settings_service=settings_service,
            transport=transport,
            event_bus=event_bus,
            coordinator=coordinator,
            telemetry=telemetry,
        )

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        # Let queued jobs finish before the connections go away.
        self.coordinator.shutdown(wait=True)

        close_transport = getattr(self.transport, "close", None)
        if callable(close_transport):
            close_transport()

        self.database.close_all()
        logger.info("ServiceContainer shutdown complete.")
