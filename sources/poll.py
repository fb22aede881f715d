"""Poll loop - fixed-interval pull of the latest reading"""
import asyncio
import logging

from connection.errors import HomeControlError, ReadingNotFound
from connection.store import ReadingStore
from sources.base import ReadingClient

logger = logging.getLogger(__name__)


class PollLoop:
    """
    Baseline data source that works regardless of push connectivity.

    Every failure is expected and non-fatal: the next tick simply retries.
    """

    def __init__(self, client: ReadingClient, store: ReadingStore, interval: float = 2.0):
        """
        Args:
            client: HTTP API client
            store: Reading store to feed
            interval: Seconds between polls (default: 2.0)
        """
        self.client = client
        self.store = store
        self.interval = interval

    async def tick(self) -> None:
        """Issue one latest-reading request and feed the result to the store."""
        try:
            stored = await self.client.latest_reading()
        except ReadingNotFound:
            logger.debug("Poll: No reading on the server yet")
            return
        except HomeControlError as e:
            logger.debug(f"Poll: Request failed: {e}")
            return

        if self.store.set(stored):
            logger.debug(f"Poll: Stored reading {stored.id} at {stored.reading_at.isoformat()}")

    async def run(self) -> None:
        """Poll forever. Only cancellation stops the loop."""
        logger.info(f"Poll: Starting polling (interval: {self.interval}s)")
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Poll: Unexpected error: {e}")
            await asyncio.sleep(self.interval)
