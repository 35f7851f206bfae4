from greensync.services.application.settings_service import SyncSettingsService

__all__ = ["SyncSettingsService"]
