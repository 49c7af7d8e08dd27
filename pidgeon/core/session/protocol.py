import asyncio
import functools
import logging
from typing import Any, Callable

from pidgeon.core.connections.client import ClientConnection
from pidgeon.core.errors import (
    AlreadyConnectingError,
    BusyError,
    NotConnectedError,
    PidgeonError,
    TransportError,
)
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.config import ConnectionConfig, SessionConfig
from pidgeon.core.models.context import PeerStatus
from pidgeon.core.models.message import Message, Status
from pidgeon.core.ports.presenter import Presenter
from pidgeon.core.session.correlator import RequestCorrelator
from pidgeon.core.session.probe import AvailabilityProbe
from pidgeon.core.throttling.backoff import ExponentialBackoff
from pidgeon.core.transport.codec import FrameCodec

ReadyCallback = Callable[[], None]
ErrorCallback = Callable[[PidgeonError], None]
CheckCallback = Callable[[PeerStatus], None]


class SessionProtocol:
    """
    Exclusive conversation between one editor and the peer.

    The session owns a ClientConnection, observes it, and owns the
    RequestCorrelator that maps request ids to the contexts supplied by
    the caller (typically a SourceLocation).

    - `start()` connects and announces the session with a Start message.
      A peer already serving someone else answers Failure/"BUSY", which
      is reported as a BusyError and ends the session.
    - `send_code()` tags the code with a fresh id and sends it as a
      Success envelope. The reply carrying the same id is routed to the
      Presenter together with the original context.
    - `check()` probes the peer on a separate connection, without
      touching this session's pending requests.

    When the connection drops every pending request is failed with a
    TransportError, then, unless the session was stopped, reconnection
    is attempted with exponential backoff. Requests are never replayed
    on the new connection.

    Errors without a request to attach them to go to the `on_error`
    callback given to `start()`, or to the Presenter when there is none.
    """
    def __init__(
        self,
        config: ConnectionConfig,
        codec: FrameCodec,
        presenter: Presenter,
        spawner: TaskSpawner,
        session: SessionConfig | None = None,
        backoff: ExponentialBackoff | None = None,
    ) -> None:
        self._config = config
        self._codec = codec
        self._presenter = presenter
        self._spawner = spawner
        self._session = session or SessionConfig()
        self._backoff = backoff or ExponentialBackoff()

        self._connection = ClientConnection(config, codec, spawner, observer=self)
        self._correlator = RequestCorrelator()

        self._on_ready: ReadyCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._reconnecting = False
        self._stopped = True

        self._logger = logging.getLogger("core.session.protocol")

    @property
    def connection(self) -> ClientConnection:
        return self._connection

    @property
    def correlator(self) -> RequestCorrelator:
        return self._correlator

    @property
    def connected(self) -> bool:
        return self._connection.connected

    @property
    def pending(self) -> int:
        return len(self._correlator)

    async def start(
        self,
        on_ready: ReadyCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> bool:
        """
        Connect and announce the session.

        `on_ready` fires once the Start message has been written, after
        every (re)connect. Returns False when the connect failed, the
        failure itself being delivered to `on_error`.
        """
        self._on_ready = on_ready
        self._on_error = on_error
        self._stopped = False
        return await self._connection.connect(timeout=self._session.connect_timeout)

    async def stop(self) -> None:
        """End the session for good: no reconnection, pending requests failed."""
        self._stopped = True

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._connection.close()

    def send_code(self, code: str, context: Any | None = None) -> int:
        """
        Send a snippet for execution and return its request id.

        With a context, the reply (or the failure that prevented the
        request from going out) is delivered to the Presenter along with
        it. Without one, the reply only reaches the generic channel.
        """
        request_id = self._correlator.next_id()
        if context is not None:
            self._correlator.track(request_id, context)

        message = Message(status=Status.success, contents=code, request_id=request_id)
        self._connection.send(message, callback=functools.partial(self._on_code_sent, request_id))
        return request_id

    async def check(self, on_result: CheckCallback | None = None) -> PeerStatus:
        probe = AvailabilityProbe(self._config, self._codec, self._spawner)
        status = await probe.run(timeout=self._session.check_timeout)
        self._logger.info(f"Peer {self._config.address} is {status}")

        if on_result is not None:
            on_result(status)
        return status

    def on_connect(self) -> None:
        self._logger.info(f"Session connected to {self._connection.address}")
        self._connection.send(Message(status=Status.start), callback=self._on_start_sent)

    def on_message(self, message: Message) -> None:
        if message.status == Status.success:
            self._on_success(message)
        elif message.status == Status.failure:
            self._on_failure(message)
        elif message.status == Status.affirm:
            self._presenter.status(message.contents or "peer ready")
        else:
            self._logger.debug(f"Ignoring {message.status} message")

    def on_error(self, error: PidgeonError) -> None:
        if self._reconnecting and isinstance(error, TransportError):
            self._logger.debug(f"Reconnect attempt failed: {error}")
            return

        self._report(error)

    def on_disconnect(self) -> None:
        for request_id, context in self._correlator.drain_all():
            error = TransportError(f"Connection closed before request {request_id} completed")
            self._presenter.present(str(error), context, True)

        self._presenter.status(f"disconnected from {self._connection.address}")

        if not self._stopped and self._session.reconnect:
            self._schedule_reconnect()

    def _on_success(self, message: Message) -> None:
        context = self._correlator.resolve(message.request_id)
        if context is not None:
            self._presenter.present(message.contents, context, False)

        if context is None or len(message.contents) < self._session.notify_threshold:
            self._presenter.present(message.contents, None, False)

    def _on_failure(self, message: Message) -> None:
        if message.request_id is None and message.is_busy:
            self._on_busy()
            return

        context = self._correlator.resolve(message.request_id)
        if context is not None:
            self._presenter.present(message.contents, context, True)

        if context is None and message.request_id is not None:
            self._logger.debug(f"Failure for unknown request {message.request_id}")

        self._presenter.present(message.contents, None, True)

    def _on_busy(self) -> None:
        self._logger.warning(f"Peer {self._connection.address} is busy with another session")
        self._stopped = True
        self._report(BusyError("Peer is busy with another session"))
        self._connection.disconnect()

    def _on_start_sent(self, error: PidgeonError | None) -> None:
        if error is not None:
            self._logger.warning(f"Unable to announce session: {error}")
            return

        if self._on_ready is not None:
            self._on_ready()

    def _on_code_sent(self, request_id: int, error: PidgeonError | None) -> None:
        if error is None:
            return

        context = self._correlator.resolve(request_id)
        if context is not None:
            self._presenter.present(str(error), context, True)
        elif isinstance(error, NotConnectedError):
            # encode and transport errors already went through on_error
            self._report(error)

    def _report(self, error: PidgeonError) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            self._presenter.present(str(error), None, True)

    def _schedule_reconnect(self) -> None:
        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            return
        self._reconnect_task = self._spawner.spawn(self._reconnect(), name="reconnect")

    async def _reconnect(self) -> None:
        address = self._connection.address
        retries = self._session.max_retries
        self._backoff.reset()
        self._reconnecting = True
        try:
            while not self._stopped and self._backoff.attempts < retries:
                delay = self._backoff.next_delay()
                self._logger.info(
                    f"Reconnecting to {address} in {delay:.1f}s "
                    f"(attempt {self._backoff.attempts}/{retries})"
                )
                await asyncio.sleep(delay)
                if self._stopped:
                    return

                try:
                    if await self._connection.connect(timeout=self._session.connect_timeout):
                        self._backoff.reset()
                        return
                except AlreadyConnectingError:
                    return
        finally:
            self._reconnecting = False

        if not self._stopped:
            self._report(TransportError(f"Gave up reconnecting to {address} after {retries} attempts"))
