import asyncio
import threading
from typing import Callable
from unittest.mock import AsyncMock, patch

from pidgeon.core.models.message import BUSY, Message, Status
from pidgeon.core.transport.codec import FrameCodec
from pidgeon.infra.json_serializer import JsonSerializer

Evaluator = Callable[[str], tuple[bool, str] | None]


async def settle(rounds: int = 10) -> None:
    """Give background tasks (read loop, drains) a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def frame(codec: FrameCodec, message: Message | dict) -> bytes:
    payload = message.to_dict() if isinstance(message, Message) else message
    return codec.encode(payload)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


def default_evaluator(code: str) -> tuple[bool, str]:
    if code.startswith("error "):
        return False, code.removeprefix("error ")
    if code == "1+1":
        return True, "2"
    return True, f"ok: {code}"


class FakePeer:
    """
    In-process execution server honouring the framed protocol.

    - only one session (announced with Start) is served at a time, a
      second Start or a Check while busy gets Failure/"BUSY"
    - a Check on an idle peer gets Affirm
    - a correlated Success request is answered with the same request_id,
      Success or Failure depending on the evaluator, or left unanswered
      when the evaluator returns None; code from a connection that does
      not own the session is ignored
    """

    def __init__(self, evaluator: Evaluator = default_evaluator) -> None:
        self._evaluator = evaluator
        self._codec = FrameCodec(JsonSerializer())
        self._server: asyncio.AbstractServer | None = None
        self._active: asyncio.StreamWriter | None = None
        self._writers: set[asyncio.StreamWriter] = set()
        self.received: list[Message] = []

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
        for writer in list(self._writers):
            writer.close()
        if self._server is not None:
            await self._server.wait_closed()

    async def drop_clients(self) -> None:
        for writer in list(self._writers):
            writer.close()
            await writer.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        try:
            while True:
                header = await reader.readexactly(4)
                body = await reader.readexactly(int.from_bytes(header, "big"))
                message = Message.from_dict(self._codec.load(self._codec.decode(header + body)[0]))
                self.received.append(message)
                reply = self._reply(writer, message)
                if reply is not None:
                    writer.write(self._codec.encode(reply.to_dict()))
                    await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self._writers.discard(writer)
            if self._active is writer:
                self._active = None
            writer.close()

    def _reply(self, writer: asyncio.StreamWriter, message: Message) -> Message | None:
        if message.status == Status.check:
            if self._active is not None:
                return Message(status=Status.failure, contents=BUSY)
            return Message(status=Status.affirm, contents="ready")

        if message.status == Status.start:
            if self._active is not None and self._active is not writer:
                return Message(status=Status.failure, contents=BUSY)
            self._active = writer
            return None

        if message.status == Status.success and message.request_id is not None:
            if self._active is not writer:
                return None
            outcome = self._evaluator(message.contents)
            if outcome is None:
                return None
            ok, result = outcome
            status = Status.success if ok else Status.failure
            return Message(status=status, contents=result, request_id=message.request_id)

        return None


async def open_with(connection, reader: asyncio.StreamReader, writer, timeout: float | None = None) -> bool:
    """Connect `connection` to in-memory streams instead of a socket."""
    with patch("asyncio.open_connection", new=AsyncMock(return_value=(reader, writer))):
        return await connection.connect(timeout=timeout)


class ThreadedPeer:
    """
    FakePeer served from its own event loop in a background thread, for
    code that drives a private loop of its own (the interactive shell).
    """

    def __init__(self, evaluator: Evaluator = default_evaluator) -> None:
        self.peer = FakePeer(evaluator)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)

    @property
    def port(self) -> int:
        return self.peer.port

    def start(self) -> None:
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self.peer.start(), self._loop).result(timeout=5)

    def stop(self) -> None:
        asyncio.run_coroutine_threadsafe(self.peer.stop(), self._loop).result(timeout=5)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._loop.close()

    def received(self) -> list[Message]:
        return list(self.peer.received)
