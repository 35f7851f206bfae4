"""
Greenhouse API Client
=====================

HTTP transport for the sync engine. Tables are addressed by name relative to
the API root (``{api_url}/{table}``); paginated history requests use
``SensorsHistory/{deviceId}/{unixSeconds}/{maxDays}`` as the table name.

Every failure (connection error, timeout, non-2xx status) is raised as
:class:`~greensync.domain.exceptions.TransportError`; the sync engine turns
it into an error value for the table or device being processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import requests

from greensync.domain.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """API credentials for user-scoped tables."""

    user_id: str
    token: str

    @classmethod
    def from_user_id_and_token(cls, user_id: str | None, token: str | None) -> Optional["Credentials"]:
        if not user_id or not token:
            return None
        return cls(user_id=user_id, token=token)

    def headers(self) -> dict[str, str]:
        return {"X-User-Id": self.user_id, "Authorization": f"Token {self.token}"}


@runtime_checkable
class Transport(Protocol):
    """Boundary between the sync engine and the network."""

    def get_table(self, table_name: str, credentials: Credentials | None = None) -> str:
        """Return the raw JSON payload for *table_name*."""
        ...

    def post_table(self, table_name: str, payload: str, credentials: Credentials | None) -> None:
        """Send a serialised JSON payload for *table_name*."""
        ...


class GreenhouseApiClient:
    """``requests``-based :class:`Transport` for the greenhouse web API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")

    def _url(self, table_name: str) -> str:
        return f"{self.base_url}/{table_name.lstrip('/')}"

    def get_table(self, table_name: str, credentials: Credentials | None = None) -> str:
        headers = credentials.headers() if credentials else {}
        try:
            response = self.session.get(self._url(table_name), headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("GET %s failed: %s", table_name, exc)
            raise TransportError(table_name, str(exc)) from exc
        self._raise_for_status(table_name, response)
        return response.text

    def post_table(self, table_name: str, payload: str, credentials: Credentials | None) -> None:
        headers = {"Content-Type": "application/json"}
        if credentials:
            headers.update(credentials.headers())
        try:
            response = self.session.post(
                self._url(table_name),
                data=payload.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            logger.warning("POST %s failed: %s", table_name, exc)
            raise TransportError(table_name, str(exc)) from exc
        self._raise_for_status(table_name, response)

    @staticmethod
    def _raise_for_status(table_name: str, response: requests.Response) -> None:
        if response.ok:
            return
        body = (response.text or "").strip()
        message = f"HTTP {response.status_code} {response.reason or ''}".strip()
        if body:
            message = f"{message}: {body[:200]}"
        raise TransportError(table_name, message, status_code=response.status_code)

    def close(self) -> None:
        self.session.close()
