"""Registration handshake - gates subscription settings on a registered session"""
import logging

from connection.errors import ProtocolViolation, SettingsPushFailure
from sources.base import ReadingClient, SubscriptionSettings

logger = logging.getLogger(__name__)


class RegistrationHandshake:
    """
    Owns the subscription settings across sessions.

    Settings can only be pushed while a session is registered, addressed to
    that session's identity. A change made while no session is registered is
    remembered and goes out with the next registration. A failed push is
    logged and not retried; the next registration sends the settings again.
    """

    def __init__(self, client: ReadingClient, settings: SubscriptionSettings | None = None):
        self.client = client
        self._settings = settings or SubscriptionSettings()
        self._session_id: str | None = None
        self._used_ids: set[str] = set()

    @property
    def settings(self) -> SubscriptionSettings:
        return self._settings

    @property
    def session_id(self) -> str | None:
        """Identity of the currently registered session, if any."""
        return self._session_id

    async def registered(self, session_id: str) -> None:
        """
        A session reached Registered: remember its identity and push settings once.

        Raises:
            ProtocolViolation: (fatal) if the identity was handed out before.
        """
        if session_id in self._used_ids:
            raise ProtocolViolation(f"Session identity {session_id} was reused", fatal=True)

        self._used_ids.add(session_id)
        self._session_id = session_id
        await self._push(session_id)

    def closed(self, session_id: str | None) -> None:
        """The session holding `session_id` ended; its identity is no longer valid."""
        if session_id is not None and session_id == self._session_id:
            self._session_id = None

    async def update_settings(self, settings: SubscriptionSettings) -> None:
        """
        Change the subscription settings.

        Sent right away when a session is registered, otherwise on the next
        registration.
        """
        self._settings = settings
        if self._session_id is None:
            logger.info("Registration: Settings changed while not registered, deferring")
            return
        await self._push(self._session_id)

    async def _push(self, session_id: str) -> None:
        settings = self._settings
        try:
            await self.client.push_settings(settings, session_id)
        except SettingsPushFailure as e:
            logger.error(f"Registration: Settings push failed: {e}")
            return
        logger.info(f"Registration: Sent settings {settings.to_dict()} to session {session_id}")
