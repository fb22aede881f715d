"""Reconnect supervisor - keeps exactly one stream session alive"""
import asyncio
import logging
from typing import Callable

from connection.session import StreamSession

logger = logging.getLogger(__name__)


class ReconnectSupervisor:
    """
    Fixed-interval watchdog for the push channel.

    The only place stream sessions are created. A session that is still
    open is never replaced; a new one is started only once the previous one
    is CLOSED. There is no backoff: attempts are paced by the interval alone.
    """

    def __init__(self, session_factory: Callable[[], StreamSession], interval: float = 1.0):
        """
        Args:
            session_factory: Builds a fresh, unstarted StreamSession
            interval: Seconds between liveness checks (default: 1.0)
        """
        self.session_factory = session_factory
        self.interval = interval
        self._session: StreamSession | None = None
        self._task: asyncio.Task | None = None

    @property
    def session(self) -> StreamSession | None:
        return self._session

    @property
    def task(self) -> asyncio.Task | None:
        """Task running the current session."""
        return self._task

    def tick(self) -> StreamSession | None:
        """
        Start a new session if none is active.

        Returns:
            The newly started session, or None if the current one is still active.
        """
        if self._session is not None and self._session.is_active:
            return None

        session = self.session_factory()
        self._session = session
        self._task = asyncio.create_task(session.run(), name=f"stream-session-{session.number}")
        logger.debug(f"Supervisor: Started session #{session.number}")
        return session

    async def run(self) -> None:
        logger.info(f"Supervisor: Watching stream sessions (interval: {self.interval}s)")
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    async def aclose(self) -> None:
        """Cancel the running session task, if any."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
