"""HTTP transport for the greenhouse API."""

from infrastructure.transport.api_client import Credentials, GreenhouseApiClient, Transport

__all__ = ["Credentials", "GreenhouseApiClient", "Transport"]
