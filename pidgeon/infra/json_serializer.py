import json
from typing import Any

from pidgeon.core.ports.serializer import Serializer


class JsonSerializer(Serializer):
    """
    UTF-8 JSON implementation of the Serializer interface.

    This is what the peer speaks by default. NaN and infinities are
    rejected instead of producing tokens other JSON parsers refuse.
    """
    def serialize(self, message: Any) -> bytes:
        return json.dumps(
            message,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))
