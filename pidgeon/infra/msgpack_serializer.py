import msgpack
from typing import Any

from pidgeon.core.ports.serializer import Serializer


class MsgPackSerializer(Serializer):
    """
    MsgPack implementation of the Serializer interface, for peers set up
    to exchange binary bodies instead of JSON text.

    Strings are always decoded as str, and a body must hold exactly one
    object: trailing bytes are an error, not a second message.
    """
    def serialize(self, message: Any) -> bytes:
        return msgpack.packb(message, use_bin_type=True)

    def deserialize(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False, strict_map_key=True)
