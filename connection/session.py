"""Stream session - the full life of one push connection"""
import enum
import itertools
import logging

from connection.errors import (
    HomeControlError,
    ProtocolViolation,
    StreamTerminated,
    TransientNetworkFailure,
)
from connection.registration import RegistrationHandshake
from connection.store import ReadingStore
from sources.base import (
    Heartbeat,
    InboundMessage,
    MessageStream,
    RegistrationAck,
    SettingSaved,
    StreamTransport,
    TelemetryPush,
    UnknownMessage,
)

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    REGISTERED = "registered"
    CLOSED = "closed"


class StreamSession:
    """
    One attempt at holding an open push connection.

    Lifecycle: DISCONNECTED -> CONNECTING -> REGISTERED -> CLOSED. CLOSED is
    terminal; the supervisor creates a new object for the next attempt.
    Inbound messages are handled one at a time in arrival order, each fully
    (including store writes and the settings push) before the next receive.
    """

    _numbers = itertools.count(1)

    def __init__(
        self,
        transport: StreamTransport,
        store: ReadingStore,
        registration: RegistrationHandshake
    ):
        self.transport = transport
        self.store = store
        self.registration = registration
        self.number = next(self._numbers)

        self._state = SessionState.DISCONNECTED
        self._session_id: str | None = None
        self._stream: MessageStream | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_active(self) -> bool:
        return self._state is not SessionState.CLOSED

    async def run(self) -> None:
        """
        Connect and process messages until the connection dies.

        Never raises for connection or protocol failures; when this returns
        the session is CLOSED.
        """
        if self._state is not SessionState.DISCONNECTED:
            raise RuntimeError(f"Session #{self.number} was already started")

        self._state = SessionState.CONNECTING
        try:
            self._stream = await self.transport.open()
            logger.info(f"Session #{self.number}: Connected, waiting for registration")

            while True:
                try:
                    message = await self._stream.receive()
                except ProtocolViolation as e:
                    if e.fatal:
                        raise
                    logger.warning(f"Session #{self.number}: Dropping message: {e}")
                    continue

                await self._dispatch(message)

        except TransientNetworkFailure as e:
            logger.warning(f"Session #{self.number}: Connect failed: {e}")
        except StreamTerminated as e:
            logger.warning(f"Session #{self.number}: Stream terminated: {e}")
        except ProtocolViolation as e:
            logger.error(f"Session #{self.number}: Protocol violation, closing: {e}")
        except HomeControlError as e:
            logger.error(f"Session #{self.number}: {e}")
        except Exception as e:
            logger.error(f"Session #{self.number}: Unexpected error: {e}")
        finally:
            await self._close()

    async def _dispatch(self, message: InboundMessage) -> None:
        match message:
            case RegistrationAck(session_id=session_id):
                await self._on_registered(session_id)

            case TelemetryPush(stored_reading=stored):
                if self.store.set(stored):
                    logger.debug(
                        f"Session #{self.number}: Stored pushed reading {stored.id} "
                        f"at {stored.reading_at.isoformat()}"
                    )

            case SettingSaved(setting=setting):
                logger.info(f"Session #{self.number}: Did save setting {setting}")

            case Heartbeat():
                pass

            case UnknownMessage(type=msg_type):
                logger.debug(f"Session #{self.number}: Ignoring message type: {msg_type}")

    async def _on_registered(self, session_id: str) -> None:
        if self._state is SessionState.REGISTERED:
            logger.warning(
                f"Session #{self.number}: Ignoring second registration ({session_id}), "
                f"already registered as {self._session_id}"
            )
            return

        self._session_id = session_id
        self._state = SessionState.REGISTERED
        logger.info(f"Session #{self.number}: Registered as {session_id}")
        await self.registration.registered(session_id)

    async def _close(self) -> None:
        session_id = self._session_id
        self._state = SessionState.CLOSED
        self._session_id = None
        self.registration.closed(session_id)

        if self._stream is not None:
            await self._stream.close()
            self._stream = None

        logger.debug(f"Session #{self.number}: Closed")
