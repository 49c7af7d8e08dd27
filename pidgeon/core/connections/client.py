import asyncio
import logging
from enum import StrEnum

from pidgeon.core.connections.observer import ConnectionObserver
from pidgeon.core.errors import (
    AlreadyConnectingError,
    DecodeError,
    EncodeError,
    FrameTooLargeError,
    NotConnectedError,
    PidgeonError,
    ProtocolError,
    TransportError,
)
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.models.config import ConnectionConfig
from pidgeon.core.models.message import Message, SendCallback
from pidgeon.core.transport.codec import Frame, FrameCodec


class ConnectionState(StrEnum):
    idle = "idle"
    connecting = "connecting"
    connected = "connected"


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ClientConnection:
    """
    Owns one TCP socket to the peer and turns its byte stream into
    Message objects.

    The lifecycle is a small state machine:

        idle --connect()--> connecting --success--> connected
        connected --disconnect() | read error | EOF--> idle

    Once connected, a background read loop appends every chunk to a
    receive buffer and extracts as many complete frames as it holds
    before waiting for more bytes. Frames use a 4-byte big-endian length
    prefix followed by the serialized payload. Each decoded message is
    handed to the observer synchronously and in arrival order, so the
    observer never runs concurrently with itself.

    A malformed body is reported and skipped using its declared length,
    the frames after it still decode. A header declaring more than the
    configured maximum means the stream is no longer aligned: the error
    is reported and the connection closed.

    Sending is fire and forget. `send()` returns immediately and the
    optional callback learns whether the frame reached the socket.
    Transport failures are never raised to the caller: they go through
    `on_error` and end in a disconnect.

    Unlike a pooled peer connection, this one never reconnects on its
    own. Reconnection policy belongs to the session that owns it.
    """
    def __init__(
        self,
        config: ConnectionConfig,
        codec: FrameCodec,
        spawner: TaskSpawner,
        observer: ConnectionObserver,
    ) -> None:
        self._config = config
        self._codec = codec
        self._spawner = spawner
        self._observer = observer

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._receive_task: asyncio.Task | None = None
        self._buffer = bytearray()

        self._state = ConnectionState.idle
        self._attempt = 0

        self._logger = logging.getLogger("core.connections.client")

    @property
    def address(self) -> str:
        return self._config.address

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.connected

    @property
    def buffered(self) -> int:
        """Number of bytes of an incomplete frame waiting in the buffer."""
        return len(self._buffer)

    async def connect(self, timeout: float | None = None) -> bool:
        """
        Open the socket and start the read loop.

        Returns True once connected, immediately if already connected.
        A failed attempt is reported to `on_error` as a TransportError,
        leaves the connection idle and returns False. Calling this while
        another attempt is in flight raises AlreadyConnectingError.

        An attempt abandoned by `disconnect()` returns False and discards
        its socket, even when a newer attempt has started since.
        """
        if self._state == ConnectionState.connected:
            return True

        if self._state == ConnectionState.connecting:
            raise AlreadyConnectingError(f"Connect to {self.address} already in progress")

        self._state = ConnectionState.connecting
        self._attempt += 1
        attempt = self._attempt
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host=self._config.host, port=self._config.port),
                timeout=timeout,
            )
        except (OSError, asyncio.TimeoutError) as ex:
            reason = "timed out" if isinstance(ex, asyncio.TimeoutError) else str(ex)
            if attempt != self._attempt:
                self._logger.debug(f"Abandoned connect to {self.address} failed: {reason}")
                return False

            self._state = ConnectionState.idle
            self._logger.warning(f"Connect failed to {self.address}: {reason}")
            self._report(TransportError(f"Unable to connect to {self.address}: {reason}"))
            return False
        except asyncio.CancelledError:
            if attempt == self._attempt:
                self._state = ConnectionState.idle
            raise

        if attempt != self._attempt or self._state != ConnectionState.connecting:
            # disconnect() was called while this attempt was in flight
            writer.close()
            return False

        self._reader = reader
        self._writer = writer
        self._buffer.clear()
        self._state = ConnectionState.connected
        self._receive_task = self._spawner.spawn(
            self._read_loop(reader), name=f"recv-{self.address}"
        )
        self._logger.debug(f"Connected to {self.address}")

        self._observer.on_connect()
        return self.connected

    def disconnect(self) -> None:
        """
        Stop the read loop, close the socket and drop buffered bytes.

        Idempotent and safe to call from any observer callback, including
        from inside the read loop. `on_disconnect` is only invoked when
        the connection was actually established.
        """
        if self._state == ConnectionState.idle and self._writer is None:
            return

        was_connected = self._state == ConnectionState.connected
        self._state = ConnectionState.idle

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not _current_task():
            task.cancel()

        writer, self._writer, self._reader = self._writer, None, None
        if writer is not None:
            try:
                writer.close()
            except (OSError, RuntimeError) as ex:
                self._logger.debug(f"Ignoring close error for {self.address}: {ex}")

        self._buffer.clear()

        if was_connected:
            self._logger.info(f"Disconnected from {self.address}")
            self._observer.on_disconnect()

    async def close(self) -> None:
        """Disconnect and wait for the socket and the read loop to wind down."""
        writer, task = self._writer, self._receive_task
        self.disconnect()

        if task is not None and task is not _current_task():
            await asyncio.gather(task, return_exceptions=True)

        if writer is not None:
            try:
                await writer.wait_closed()
            except (OSError, RuntimeError):
                pass

    def send(self, message: Message, callback: SendCallback | None = None) -> None:
        """
        Frame and write a message.

        The callback receives None once the frame is flushed to the
        socket, NotConnectedError when nothing could be written because
        the connection is down, or the EncodeError/TransportError that
        interrupted the write. Encode and transport errors are also
        reported to `on_error`.
        """
        if self._state != ConnectionState.connected or self._writer is None:
            self._complete(callback, NotConnectedError(f"Not connected to {self.address}"))
            return

        try:
            frame = self._codec.encode(message.to_dict())
        except EncodeError as ex:
            self._logger.warning(f"Unable to encode {message.status} message: {ex}")
            self._report(ex)
            self._complete(callback, ex)
            return

        writer = self._writer
        try:
            writer.write(frame)
        except (OSError, RuntimeError) as ex:
            error = TransportError(f"Write to {self.address} failed: {ex}")
            self._report(error)
            self._complete(callback, error)
            return

        self._spawner.spawn(self._drain(writer, callback), name=f"send-{self.address}")

    def data_received(self, data: bytes) -> None:
        """
        Append a chunk read from the socket and dispatch every complete
        frame it finishes. Only an incomplete frame is left buffered.
        """
        if self._state != ConnectionState.connected:
            return

        self._buffer.extend(data)

        while self._state == ConnectionState.connected:
            try:
                frame = self._codec.next_frame(self._buffer)
            except FrameTooLargeError as ex:
                self._logger.warning(f"{ex}, closing connection to {self.address}")
                self._report(ex)
                self.disconnect()
                return

            if frame is None:
                return

            self._dispatch(frame)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while self._state == ConnectionState.connected and self._reader is reader:
            try:
                chunk = await reader.read(self._config.read_size)
            except OSError as ex:
                if self._reader is not reader:
                    return
                self._logger.error(f"Read from {self.address} failed: {ex}")
                self._report(TransportError(f"Read from {self.address} failed: {ex}"))
                self.disconnect()
                return

            if self._reader is not reader:
                return

            if not chunk:
                self._logger.info(f"Peer {self.address} closed the connection")
                self.disconnect()
                return

            self.data_received(chunk)

    async def _drain(self, writer: asyncio.StreamWriter, callback: SendCallback | None) -> None:
        try:
            await writer.drain()
        except OSError as ex:
            error = TransportError(f"Write to {self.address} failed: {ex}")
            self._logger.error(str(error))
            self._report(error)
            self._complete(callback, error)
            return

        self._complete(callback, None)

    def _dispatch(self, frame: Frame) -> None:
        try:
            message = Message.from_dict(self._codec.load(frame))
        except DecodeError as ex:
            self._logger.warning(f"Invalid frame from {self.address}: {ex}")
            self._report(ex)
            return
        except ProtocolError as ex:
            self._logger.warning(f"Dropping message from {self.address}: {ex}")
            return

        try:
            self._observer.on_message(message)
        except Exception as ex:
            self._logger.error(
                f"Error while handling {message.status} message from {self.address}: {ex}",
                exc_info=ex
            )

    def _report(self, error: PidgeonError) -> None:
        try:
            self._observer.on_error(error)
        except Exception as ex:
            self._logger.error(f"Error in error handler: {ex}", exc_info=ex)

    def _complete(self, callback: SendCallback | None, error: PidgeonError | None) -> None:
        if callback is None:
            if error is not None:
                self._logger.warning(f"Send failed: {error}")
            return

        try:
            callback(error)
        except Exception as ex:
            self._logger.error(f"Error in send callback: {ex}", exc_info=ex)
