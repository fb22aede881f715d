import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pytest_socket import disable_socket

from connection.errors import StreamTerminated, TransientNetworkFailure
from sources.base import Reading, StoredReading

BASE_TIME = datetime(2024, 10, 9, 12, 0, 0, tzinfo=timezone.utc)


def pytest_runtest_setup():
    """
    Runs before every test.
    We disable network access. Every attempt to connect
    (HTTP, DNS, etc) will immediately raise a SocketBlockedError.
    """
    disable_socket(allow_unix_socket=True)


def build_stored_reading(t: float, **overrides) -> StoredReading:
    """A stored reading taken `t` seconds after BASE_TIME"""
    values = dict(
        from_solar=1200.0,
        to_load=800.0,
        from_battery=0.0,
        to_battery=400.0,
        from_grid=0.0,
        to_grid=0.0,
        battery_level=0.5,
        is_charging=True,
        reading_at=BASE_TIME + timedelta(seconds=t),
    )
    values.update(overrides)
    return StoredReading(id=f"reading-{t}", value=Reading(**values))


class FakeStream:
    """
    Scripted message stream.

    Items are returned in order; exceptions are raised, asyncio.Event items
    block until set. An exhausted script ends the stream.
    """

    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    async def receive(self):
        while self.items:
            item = self.items.pop(0)
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, BaseException):
                raise item
            return item
        raise StreamTerminated("end of stream")

    async def close(self):
        self.closed = True


class FakeTransport:
    """Hands out the given streams one per open(); refuses once they run out"""

    def __init__(self, *streams):
        self.streams = list(streams)
        self.opened = 0

    async def open(self):
        self.opened += 1
        if not self.streams:
            raise TransientNetworkFailure("connection refused")
        stream = self.streams.pop(0)
        if isinstance(stream, BaseException):
            raise stream
        return stream


@pytest.fixture
def make_stored_reading():
    return build_stored_reading


@pytest.fixture
def make_stream():
    return FakeStream


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def base_time():
    return BASE_TIME
