import struct
from dataclasses import dataclass
from typing import Any

from pidgeon.core.errors import DecodeError, EncodeError, FrameTooLargeError
from pidgeon.core.ports.serializer import Serializer

# "!I" = uint32 big-endian (network order)
HEADER = struct.Struct("!I")


@dataclass(frozen=True)
class Frame:
    """One length-prefixed unit read off the wire."""
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)


class FrameCodec:
    """
    Encodes payloads into frames and extracts frames from an accumulated
    receive buffer.

    Each frame begins with a 4-byte big-endian length prefix followed by
    exactly that many bytes of serialized payload. A zero length is a
    valid frame with an empty body.

    Decoding is split in two steps. `decode()` only slices bytes and
    never looks at the body, so a malformed body can be skipped without
    losing alignment on the next frame. `load()` then deserializes a
    single frame body.

    Declared lengths above `max_frame_size` are rejected with
    FrameTooLargeError rather than waiting for the bytes to arrive.
    """
    def __init__(self, serializer: Serializer, max_frame_size: int = 4 * 1024 * 1024) -> None:
        self._serializer = serializer
        self._max_frame_size = max_frame_size

    @property
    def max_frame_size(self) -> int:
        return self._max_frame_size

    def encode(self, payload: Any) -> bytes:
        try:
            body = self._serializer.serialize(payload)
        except Exception as exc:
            raise EncodeError(f"Unable to serialize payload: {exc}") from exc

        if len(body) > self._max_frame_size:
            raise EncodeError(
                f"Payload of {len(body)} bytes exceeds the "
                f"{self._max_frame_size} bytes frame limit"
            )

        return HEADER.pack(len(body)) + body

    def decode(self, buffer: bytes | bytearray) -> tuple[Frame | None, bytes | bytearray]:
        """
        Return the first complete frame in `buffer` and the bytes left
        after it. The frame is None when the header or the body is still
        incomplete, in which case `buffer` itself is returned, uncopied.
        """
        end = self._frame_end(buffer)
        if end is None:
            return None, buffer

        return Frame(bytes(buffer[HEADER.size:end])), bytes(buffer[end:])

    def next_frame(self, buffer: bytearray) -> Frame | None:
        """
        Remove the first complete frame from `buffer` in place and return
        it. Returns None and leaves `buffer` untouched while incomplete.
        """
        end = self._frame_end(buffer)
        if end is None:
            return None

        frame = Frame(bytes(buffer[HEADER.size:end]))
        del buffer[:end]
        return frame

    def _frame_end(self, buffer: bytes | bytearray) -> int | None:
        if len(buffer) < HEADER.size:
            return None

        length = HEADER.unpack_from(buffer)[0]
        if length > self._max_frame_size:
            raise FrameTooLargeError(
                f"Frame declares {length} bytes, limit is {self._max_frame_size}"
            )

        end = HEADER.size + length
        return end if len(buffer) >= end else None

    def load(self, frame: Frame) -> Any:
        try:
            return self._serializer.deserialize(frame.payload)
        except Exception as exc:
            raise DecodeError(
                f"Malformed frame body ({frame.length} bytes): {exc}"
            ) from exc
