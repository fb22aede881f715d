"""Reading store - the single most recent reading shown by the menu bar"""
import logging
from datetime import datetime
from typing import Callable

from sources.base import StoredReading

logger = logging.getLogger(__name__)

ReadingListener = Callable[[StoredReading], None]


class ReadingStore:
    """
    Holds the latest stored reading, ordered by `reading_at`.

    Poll results and pushed readings both arrive through set(); whichever
    carries the newest timestamp wins. All calls happen on the event loop,
    so replacing the reference is the only synchronization needed.
    """

    def __init__(self):
        self._stored: StoredReading | None = None
        self._listeners: list[ReadingListener] = []

    def get(self) -> StoredReading | None:
        return self._stored

    def set(self, stored: StoredReading) -> bool:
        """
        Store `stored` unless a newer reading is already held.

        Returns:
            True if the reading replaced the current one, False if it was stale.
        """
        current = self._stored
        if current is not None and stored.reading_at < current.reading_at:
            logger.debug(
                f"Store: Discarding stale reading {stored.id} "
                f"({stored.reading_at.isoformat()} < {current.reading_at.isoformat()})"
            )
            return False

        self._stored = stored
        for listener in list(self._listeners):
            listener(stored)
        return True

    def age_since(self, now: datetime) -> float | None:
        """Seconds between the stored reading and `now`, or None before the first reading."""
        if self._stored is None:
            return None
        return (now - self._stored.reading_at).total_seconds()

    def add_listener(self, listener: ReadingListener) -> Callable[[], None]:
        """
        Call `listener` for every accepted reading.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
