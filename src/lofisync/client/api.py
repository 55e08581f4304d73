"""HTTP client for the sync service.

This module provides:
- HTTPClient: Remote exchange over HTTP (one POST per sync cycle)
"""

from __future__ import annotations

import logging

import httpx

from lofisync import __version__
from lofisync.client.sync.types import (
    AuthenticationError,
    NetworkError,
    SyncRequest,
    SyncResponse,
    TransportError,
)
from lofisync.core.config import ServerConfig

logger = logging.getLogger(__name__)

SYNC_ENDPOINT = "/v1/sync"


class HTTPClient:
    """HTTP client for the sync service.

    No retries happen here: a failed exchange fails the whole cycle and the
    loop controller reschedules it with fresh record selection.
    """

    def __init__(self, config: ServerConfig) -> None:
        """Initialize the client.

        Args:
            config: Server URL, token and timeouts.
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": f"lofisync/{__version__}",
            },
        )

    @property
    def config(self) -> ServerConfig:
        """Get the server configuration."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def health_check(self) -> bool:
        """Check if the server is reachable.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    def sync(self, request: SyncRequest) -> SyncResponse:
        """Send one batch and receive the requested window of remote changes.

        Args:
            request: Outbound records and inbound window.

        Returns:
            SyncResponse; ok is False for non-2xx answers.

        Raises:
            AuthenticationError: If the token is rejected.
            NetworkError: If the server cannot be reached.
            TransportError: On a malformed response.
        """
        body = request.to_dict()
        logger.debug(
            "POST %s: %d operations, %d qsos",
            SYNC_ENDPOINT,
            len(request.operations),
            len(request.qsos),
        )
        try:
            response = self._client.post(SYNC_ENDPOINT, json=body)
        except httpx.RequestError as e:
            raise NetworkError(f"Sync request failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if not response.is_success:
            logger.warning("Sync service answered %d", response.status_code)
            return SyncResponse(ok=False, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Sync response is not valid JSON", response.status_code) from e
        if not isinstance(data, dict):
            raise TransportError("Sync response is not a JSON object", response.status_code)

        try:
            return SyncResponse.from_dict(data, status_code=response.status_code)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(
                f"Malformed record in sync response: {e!r}", response.status_code
            ) from e
