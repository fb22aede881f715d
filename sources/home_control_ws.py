"""Home Control WebSocket transport - opens stream connections and decodes frames"""
import json
import logging

import websockets

from connection.errors import ProtocolViolation, StreamTerminated, TransientNetworkFailure
from sources.base import (
    Heartbeat,
    InboundMessage,
    RegistrationAck,
    SettingSaved,
    StoredReading,
    TelemetryPush,
    UnknownMessage,
)

logger = logging.getLogger(__name__)


def parse_message(raw: str | bytes) -> InboundMessage:
    """
    Decode one inbound frame.

    Frames are JSON objects with a "type" key. Anything that is not a JSON
    object is broken framing and fatal for the connection. A known type whose
    payload is malformed only costs that message.
    """
    try:
        data = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise ProtocolViolation(f"Unparsable frame: {e}", fatal=True) from e

    if not isinstance(data, dict):
        raise ProtocolViolation(f"Frame is not a JSON object: {raw!r}", fatal=True)

    msg_type = data.get("type")

    try:
        if msg_type == "registered":
            session_id = data["sessionId"]
            if not session_id:
                raise ValueError("empty sessionId")
            return RegistrationAck(session_id=str(session_id))

        elif msg_type == "inverterReadingCreated":
            return TelemetryPush(stored_reading=StoredReading.from_dict(data["storedReading"]))

        elif msg_type == "settingSaved":
            setting = data.get("setting", {})
            if not isinstance(setting, dict):
                raise TypeError("setting is not an object")
            return SettingSaved(setting=setting)

        elif msg_type == "heartbeat":
            return Heartbeat()

    except (KeyError, ValueError, TypeError) as e:
        raise ProtocolViolation(f"Malformed '{msg_type}' message: {e}") from e

    return UnknownMessage(type=msg_type, payload=data)


class WebSocketStream:
    """One open WebSocket connection. Not reusable once it has terminated."""

    def __init__(self, websocket):
        self.websocket = websocket

    async def receive(self) -> InboundMessage:
        try:
            raw = await self.websocket.recv()
        except websockets.ConnectionClosed as e:
            raise StreamTerminated(f"Connection closed: {e}") from e
        except OSError as e:
            raise StreamTerminated(f"Transport error: {e}") from e

        return parse_message(raw)

    async def close(self) -> None:
        try:
            await self.websocket.close()
        except (websockets.WebSocketException, OSError) as e:
            logger.debug(f"HomeControl WS: Error while closing: {e}")


class HomeControlWebSocket:
    """
    Home Control push channel.

    Every open() makes a brand-new connection. Reconnecting is the
    caller's job; nothing here retries.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        open_timeout: float = 10.0,
        user_agent: str = "HomeControl-Agent/0.1.0"
    ):
        """
        Initialize the transport.

        Args:
            url: WebSocket endpoint, e.g. "ws://192.168.2.10:8080/websocket"
            auth_token: Bearer token, optional
            open_timeout: Seconds to wait for the opening handshake
            user_agent: User-Agent header for the handshake
        """
        self.url = url
        self.auth_token = auth_token
        self.open_timeout = open_timeout
        self.user_agent = user_agent

    async def open(self) -> WebSocketStream:
        headers = {"User-Agent": self.user_agent}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        logger.info(f"HomeControl WS: Connect WebSocket {self.url}")

        try:
            websocket = await websockets.connect(
                self.url,
                additional_headers=headers,
                open_timeout=self.open_timeout
            )
        except (websockets.WebSocketException, OSError, TimeoutError) as e:
            raise TransientNetworkFailure(f"Cannot connect to {self.url}: {e}") from e

        return WebSocketStream(websocket)
