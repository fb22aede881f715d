"""Home Control HTTP API client - latest reading (poll) and settings push"""
import logging

import httpx

from connection.errors import (
    ProtocolViolation,
    ReadingNotFound,
    SettingsPushFailure,
    TransientNetworkFailure,
)
from sources.base import StoredReading, SubscriptionSettings

logger = logging.getLogger(__name__)


class HomeControlClient:
    """
    Client for the Home Control server REST API.

    Everything goes through one persistent httpx client with keep-alive,
    since the poll loop hits the same endpoint every few seconds.
    """

    def __init__(
        self,
        host: str,
        port: int = 8080,
        auth_token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        """
        Initialize the client.

        Args:
            host: IP address or hostname of the Home Control server
            port: HTTP port of the server (default: 8080)
            auth_token: Bearer token, optional
            timeout: HTTP request timeout in seconds (default: 5.0)
            transport: Custom httpx transport (used by tests)
        """
        self.host = host
        self.port = port
        self.auth_token = auth_token
        self.timeout = timeout
        self.base_url = f"http://{host}:{port}"
        self.ws_url = f"ws://{host}:{port}/websocket"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=1),
            transport=transport
        )

    @property
    def headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def latest_reading(self) -> StoredReading:
        """GET the most recent stored inverter reading."""
        try:
            response = await self.client.get("/inverter-readings/latest")
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientNetworkFailure(f"GET latest reading failed: {e}") from e

        if response.status_code == 404:
            raise ReadingNotFound("Server has no inverter reading yet")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransientNetworkFailure(f"HTTP error {e.response.status_code}") from e

        try:
            return StoredReading.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolViolation(f"Invalid latest reading body: {e}") from e

    async def push_settings(self, settings: SubscriptionSettings, session_id: str) -> None:
        """PUT subscription settings for the stream session `session_id`."""
        try:
            response = await self.client.put(
                f"/websockets/{session_id}/settings",
                json=settings.to_dict()
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SettingsPushFailure(
                f"PUT settings for session {session_id} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SettingsPushFailure(f"PUT settings for session {session_id} failed: {e}") from e

        logger.debug(f"HomeControl API: Settings accepted for session {session_id}")

    async def aclose(self) -> None:
        await self.client.aclose()
        logger.info("HomeControl API: Client closed")
