from typing import Protocol, Any


class Serializer(Protocol):
    """
    Turns payloads into frame bodies and back.

    Implementations must be:
    - deterministic
    - pure (no side effects)
    - loud on malformed input: raise rather than return a placeholder,
      the codec converts failures into EncodeError/DecodeError
    """

    def serialize(self, message: Any) -> bytes:
        """Encode a Python object into a frame body."""

    def deserialize(self, data: bytes) -> Any:
        """Decode a frame body received from the peer."""
