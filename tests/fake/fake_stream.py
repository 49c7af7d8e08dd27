import asyncio

from pidgeon.core.transport.codec import FrameCodec


class FakeStreamWriter:
    """
    In-memory stand-in for asyncio.StreamWriter.

    Written bytes are kept in `buffer`. `drain_error` / `write_error`
    make the corresponding call fail, to exercise transport errors.
    """

    def __init__(
        self,
        drain_error: Exception | None = None,
        write_error: Exception | None = None,
    ) -> None:
        self.buffer = bytearray()
        self.closed = False
        self.drain_error = drain_error
        self.write_error = write_error

    def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        if self.closed:
            raise RuntimeError("Cannot write to closed transport")
        self.buffer.extend(data)

    async def drain(self) -> None:
        await asyncio.sleep(0)
        if self.drain_error is not None:
            raise self.drain_error

    def close(self) -> None:
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed

    async def wait_closed(self) -> None:
        return None

    def frames(self, codec: FrameCodec) -> list:
        """Decode every frame written so far."""
        payloads = []
        rest = bytes(self.buffer)
        while True:
            frame, rest = codec.decode(rest)
            if frame is None:
                return payloads
            payloads.append(codec.load(frame))
