"""Tests for the reconnect supervisor"""
import asyncio

import pytest

from connection.registration import RegistrationHandshake
from connection.session import SessionState, StreamSession
from connection.store import ReadingStore
from connection.supervisor import ReconnectSupervisor
from sources.base import RegistrationAck, SubscriptionSettings, TelemetryPush


async def wait_for_state(session, state):
    for _ in range(100):
        if session.state is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"Session never reached {state}, is {session.state}")


def make_supervisor(mocker, transport, store=None):
    client = mocker.AsyncMock()
    registration = RegistrationHandshake(client)
    store = store or ReadingStore()
    supervisor = ReconnectSupervisor(lambda: StreamSession(transport, store, registration))
    return supervisor, client


@pytest.mark.asyncio
async def test_tick_starts_session_when_none(mocker, make_stream, make_transport):
    """Test that the first tick creates and starts a session"""
    supervisor, _ = make_supervisor(mocker, make_transport(make_stream([])))

    session = supervisor.tick()

    assert session is not None
    assert supervisor.session is session
    await supervisor.task
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_tick_never_replaces_active_session(mocker, make_stream, make_transport):
    """Test that at most one session is connecting or registered at any time"""
    gate = asyncio.Event()
    transport = make_transport(make_stream([RegistrationAck("X"), gate]))
    supervisor, _ = make_supervisor(mocker, transport)

    first = supervisor.tick()
    # Not yet running: still counts as active
    assert supervisor.tick() is None

    await wait_for_state(first, SessionState.REGISTERED)
    for _ in range(5):
        assert supervisor.tick() is None
    assert transport.opened == 1

    gate.set()
    await supervisor.task
    assert supervisor.tick() is not None
    await supervisor.task


@pytest.mark.asyncio
async def test_restart_after_stream_terminated(mocker, make_stream, make_transport, make_stored_reading):
    """Test that a dropped stream is replaced by one new session with a fresh identity"""
    store = ReadingStore()
    transport = make_transport(
        make_stream([RegistrationAck("X"), TelemetryPush(make_stored_reading(10))]),
        make_stream([RegistrationAck("Y"), TelemetryPush(make_stored_reading(12))]),
    )
    supervisor, client = make_supervisor(mocker, transport, store)

    first = supervisor.tick()
    await supervisor.task
    assert first.state is SessionState.CLOSED

    second = supervisor.tick()
    assert second is not first
    assert supervisor.tick() is None
    await supervisor.task

    assert [call.args for call in client.push_settings.await_args_list] == [
        (SubscriptionSettings(), "X"),
        (SubscriptionSettings(), "Y"),
    ]
    assert store.get().id == "reading-12"


@pytest.mark.asyncio
async def test_reused_identity_closes_new_session(mocker, make_stream, make_transport):
    """Test that a server handing out an old identity gets no settings push"""
    transport = make_transport(
        make_stream([RegistrationAck("X")]),
        make_stream([RegistrationAck("X")]),
    )
    supervisor, client = make_supervisor(mocker, transport)

    supervisor.tick()
    await supervisor.task
    second = supervisor.tick()
    await supervisor.task

    assert second.state is SessionState.CLOSED
    client.push_settings.assert_awaited_once_with(SubscriptionSettings(), "X")


@pytest.mark.asyncio
async def test_connect_failures_retry_every_tick(mocker, make_transport):
    """Test that refused connections are retried without backoff"""
    transport = make_transport()
    supervisor, _ = make_supervisor(mocker, transport)

    for _ in range(3):
        assert supervisor.tick() is not None
        await supervisor.task

    assert transport.opened == 3


@pytest.mark.asyncio
async def test_run_ticks_on_interval(mocker, make_transport):
    """Test that run() checks liveness once per interval"""
    factory = mocker.Mock(side_effect=lambda: StreamSession(
        make_transport(), ReadingStore(), RegistrationHandshake(mocker.AsyncMock())
    ))
    supervisor = ReconnectSupervisor(factory, interval=1.0)
    mock_sleep = mocker.patch(
        'connection.supervisor.asyncio.sleep',
        side_effect=[None, None, asyncio.CancelledError()]
    )

    with pytest.raises(asyncio.CancelledError):
        await supervisor.run()

    # The sleeps never yield, so the first session is still pending
    assert factory.call_count == 1
    assert mock_sleep.call_count == 3
    mock_sleep.assert_called_with(1.0)

    mocker.stopall()
    await supervisor.aclose()
    assert supervisor.task.cancelled()


@pytest.mark.asyncio
async def test_aclose_cancels_running_session(mocker, make_stream, make_transport):
    """Test that shutdown tears down the live session"""
    gate = asyncio.Event()
    stream = make_stream([RegistrationAck("X"), gate])
    supervisor, _ = make_supervisor(mocker, make_transport(stream))

    session = supervisor.tick()
    await wait_for_state(session, SessionState.REGISTERED)

    await supervisor.aclose()

    assert session.state is SessionState.CLOSED
    assert stream.closed
