from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from greensync.utils.time import EPOCH
from infrastructure.database.repositories.settings import SyncSettingsRepository
from infrastructure.transport.api_client import Credentials

logger = logging.getLogger(__name__)

CRED_USER_ID = "CredUserId"
CRED_TOKEN = "CredToken"
LAST_SUCCESSFUL_GET = "LastSuccessfulGeneralDbGet"
LAST_SUCCESSFUL_POST = "LastSuccessfulGeneralDbPost"


@dataclass
class SyncSettingsService:
    """
    Process-wide sync settings: API credentials and the high-water marks of
    the last fully successful reference pull and push.

    Watermarks default to the Unix epoch so that a first push sends every row.
    They are written only by the sync engine after a fully clean phase.
    """

    repository: SyncSettingsRepository

    # --- Credentials -------------------------------------------------------------
    @property
    def cred_user_id(self) -> Optional[str]:
        return self.repository.get(CRED_USER_ID)

    @property
    def cred_token(self) -> Optional[str]:
        return self.repository.get(CRED_TOKEN)

    def credentials(self) -> Optional[Credentials]:
        return Credentials.from_user_id_and_token(self.cred_user_id, self.cred_token)

    def set_credentials(self, *, user_id: str, token: str) -> None:
        if not user_id or not token:
            raise ValueError("Both user id and token are required.")
        self.repository.set(CRED_USER_ID, user_id)
        self.repository.set(CRED_TOKEN, token)
        logger.info("Stored API credentials for user %s", user_id)

    def clear_credentials(self) -> None:
        self.repository.set(CRED_USER_ID, None)
        self.repository.set(CRED_TOKEN, None)

    # --- Watermarks --------------------------------------------------------------
    @property
    def last_successful_get(self) -> datetime:
        return self.repository.get_timestamp(LAST_SUCCESSFUL_GET) or EPOCH

    @last_successful_get.setter
    def last_successful_get(self, value: datetime) -> None:
        self.repository.set_timestamp(LAST_SUCCESSFUL_GET, value)

    @property
    def last_successful_post(self) -> datetime:
        return self.repository.get_timestamp(LAST_SUCCESSFUL_POST) or EPOCH

    @last_successful_post.setter
    def last_successful_post(self, value: datetime) -> None:
        self.repository.set_timestamp(LAST_SUCCESSFUL_POST, value)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "user_id": self.cred_user_id,
            "credentials_present": self.credentials() is not None,
            "last_successful_get": self.last_successful_get.isoformat(),
            "last_successful_post": self.last_successful_post.isoformat(),
        }
