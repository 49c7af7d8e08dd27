import asyncio
import logging

from pidgeon.core.connections.client import ClientConnection
from pidgeon.core.errors import PidgeonError, TransportError
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.config import ConnectionConfig
from pidgeon.core.models.context import PeerStatus
from pidgeon.core.models.message import Message, Status
from pidgeon.core.transport.codec import FrameCodec


class AvailabilityProbe:
    """
    Asks the peer whether it can accept a session, over a short-lived
    connection of its own.

    The probe connects, sends a Check message and waits for the first
    definitive answer: Affirm means the peer is available, a "BUSY"
    Failure means another session owns it. Connection errors, a peer
    hanging up before answering, and the timeout all yield
    `PeerStatus.unreachable`. The probe connection is closed in every
    case and shares nothing with the main session.
    """
    def __init__(
        self,
        config: ConnectionConfig,
        codec: FrameCodec,
        spawner: TaskSpawner,
    ) -> None:
        self._connection = ClientConnection(config, codec, spawner, observer=self)
        self._result: asyncio.Future[PeerStatus] | None = None
        self._logger = logging.getLogger("core.session.probe")

    @property
    def connection(self) -> ClientConnection:
        return self._connection

    async def run(self, timeout: float | None = None) -> PeerStatus:
        self._result = asyncio.get_running_loop().create_future()
        try:
            return await asyncio.wait_for(self._probe(), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                f"No answer from {self._connection.address} within {timeout}s"
            )
            return PeerStatus.unreachable
        finally:
            await self._connection.close()

    async def _probe(self) -> PeerStatus:
        if await self._connection.connect():
            self._connection.send(Message(status=Status.check), callback=self._on_sent)
        return await self._result

    def on_connect(self) -> None:
        self._logger.debug(f"Probing {self._connection.address}")

    def on_message(self, message: Message) -> None:
        if message.status == Status.affirm:
            self._settle(PeerStatus.available)
        elif message.is_busy:
            self._settle(PeerStatus.busy)
        elif message.status == Status.failure:
            self._logger.warning(f"Peer refused the probe: {message.contents}")
            self._settle(PeerStatus.unreachable)
        else:
            self._logger.debug(f"Ignoring {message.status} message during probe")

    def on_error(self, error: PidgeonError) -> None:
        if not isinstance(error, TransportError):
            # the connection skips bad frames, keep waiting for an answer
            self._logger.warning(f"Ignoring error while probing: {error}")
            return

        self._logger.info(f"Probe failed: {error}")
        self._settle(PeerStatus.unreachable)

    def on_disconnect(self) -> None:
        self._settle(PeerStatus.unreachable)

    def _on_sent(self, error: PidgeonError | None) -> None:
        if error is not None:
            self._settle(PeerStatus.unreachable)

    def _settle(self, status: PeerStatus) -> None:
        if self._result is None or self._result.done():
            return
        self._result.set_result(status)
        self._connection.disconnect()
