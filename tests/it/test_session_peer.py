import asyncio
import io

import pytest

from tests.helpers import FakePeer, wait_until

from pidgeon.bootstrap.runner import execute
from pidgeon.core.errors import BusyError
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.config import ConnectionConfig, SessionConfig
from pidgeon.core.models.context import PeerStatus, SourceLocation
from pidgeon.core.models.message import Status
from pidgeon.core.session.protocol import SessionProtocol
from pidgeon.core.throttling.backoff import ExponentialBackoff
from pidgeon.core.transport.codec import FrameCodec
from pidgeon.infra.console_presenter import ConsolePresenter
from pidgeon.infra.json_serializer import JsonSerializer


def make_session(port: int, presenter, reconnect: bool = False) -> SessionProtocol:
    return SessionProtocol(
        config=ConnectionConfig(host="127.0.0.1", port=port),
        codec=FrameCodec(JsonSerializer()),
        presenter=presenter,
        spawner=TaskSpawner(),
        session=SessionConfig(connect_timeout=2.0, check_timeout=2.0, reconnect=reconnect, max_retries=2),
        backoff=ExponentialBackoff(initial=0.01, maximum=0.05, jitter=0),
    )


@pytest.mark.it
@pytest.mark.asyncio
async def test_round_trip_against_peer():
    peer = FakePeer()
    await peer.start()
    stream = io.StringIO()
    presenter = ConsolePresenter(stream)
    session = make_session(peer.port, presenter)
    try:
        ready = asyncio.Event()
        assert await session.start(on_ready=ready.set)
        await asyncio.wait_for(ready.wait(), 2.0)

        assert await execute(session, presenter, "1+1", SourceLocation("init.lua", 1), 2.0)
        assert not await execute(session, presenter, "error nope", SourceLocation("init.lua", 2), 2.0)
    finally:
        await session.stop()
        await peer.stop()

    output = stream.getvalue().splitlines()
    assert "[init.lua:1] 2" in output
    assert "[init.lua:2] error: nope" in output
    assert [m.status for m in peer.received[:1]] == [Status.start]
    assert [m.request_id for m in peer.received[1:]] == [1, 2]


@pytest.mark.it
@pytest.mark.asyncio
async def test_check_reports_available_then_busy():
    peer = FakePeer()
    await peer.start()
    owner = make_session(peer.port, ConsolePresenter(io.StringIO()))
    try:
        assert await owner.check() == PeerStatus.available

        ready = asyncio.Event()
        await owner.start(on_ready=ready.set)
        await asyncio.wait_for(ready.wait(), 2.0)
        await wait_until(lambda: any(m.status == Status.start for m in peer.received))

        assert await owner.check() == PeerStatus.busy
        assert owner.connected
    finally:
        await owner.stop()
        await peer.stop()


@pytest.mark.it
@pytest.mark.asyncio
async def test_check_unreachable_without_peer():
    peer = FakePeer()
    await peer.start()
    port = peer.port
    await peer.stop()

    session = make_session(port, ConsolePresenter(io.StringIO()))

    assert await session.check() == PeerStatus.unreachable


@pytest.mark.it
@pytest.mark.asyncio
async def test_second_session_is_turned_away():
    peer = FakePeer()
    await peer.start()
    first = make_session(peer.port, ConsolePresenter(io.StringIO()))
    second = make_session(peer.port, ConsolePresenter(io.StringIO()))
    errors = []
    try:
        ready = asyncio.Event()
        await first.start(on_ready=ready.set)
        await asyncio.wait_for(ready.wait(), 2.0)
        await wait_until(lambda: any(m.status == Status.start for m in peer.received))

        await second.start(on_error=errors.append)
        await wait_until(lambda: bool(errors))

        assert isinstance(errors[0], BusyError)
        await wait_until(lambda: not second.connected)
        assert first.connected
    finally:
        await second.stop()
        await first.stop()
        await peer.stop()


@pytest.mark.it
@pytest.mark.asyncio
async def test_peer_drop_fails_pending_and_reconnects():
    peer = FakePeer(evaluator=lambda code: None)
    await peer.start()
    presenter = ConsolePresenter(io.StringIO())
    session = make_session(peer.port, presenter, reconnect=True)
    try:
        ready = asyncio.Event()
        await session.start(on_ready=ready.set)
        await asyncio.wait_for(ready.wait(), 2.0)

        location = SourceLocation("slow.lua", 1)
        reply = presenter.expect(location)
        session.send_code("loop()", location)
        await wait_until(lambda: any(m.request_id == 1 for m in peer.received))

        ready.clear()
        await peer.drop_clients()

        content, is_error = await asyncio.wait_for(reply, 2.0)
        assert is_error
        assert "before request 1 completed" in content

        await asyncio.wait_for(ready.wait(), 2.0)
        assert session.connected
        assert session.pending == 0
    finally:
        await session.stop()
        await peer.stop()
