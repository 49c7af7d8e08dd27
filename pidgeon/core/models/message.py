from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from pidgeon.core.errors import ProtocolError, PidgeonError

BUSY = "BUSY"
"""
Contents of the Failure the peer sends when another session already
owns it.
"""


class Status(StrEnum):
    """
    Discriminates every message exchanged with the peer.

    Outbound code requests always carry Success: on the way out it means
    "well-formed request", not an outcome.
    """
    start = "Start"
    check = "Check"
    success = "Success"
    failure = "Failure"
    affirm = "Affirm"


@dataclass
class Message:
    """
    Internal representation of one framed payload.
    The codec turns it into bytes via the Serializer, the session
    manipulates it in this native Python form.
    """
    status: Status
    """
    Status tag of the message.
    """

    contents: str = ""
    """
    Code to execute on the way out, result or error text on the way in.
    """

    request_id: int | None = None
    """
    Correlation identifier. Only correlated Success/Failure messages
    carry one.
    """

    @property
    def is_busy(self) -> bool:
        return self.status == Status.failure and self.contents == BUSY

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation, omitting an absent request_id."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "contents": self.contents,
        }
        if self.request_id is not None:
            data["request_id"] = self.request_id
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        """
        Build a Message from a deserialized payload.

        Raises ProtocolError when the payload is not a mapping, the
        status tag is missing or unknown, or a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected an object, got {type(data).__name__}")

        raw_status = data.get("status")
        if raw_status is None:
            raise ProtocolError("Missing 'status' field")
        try:
            status = Status(raw_status)
        except ValueError:
            raise ProtocolError(f"Unknown status '{raw_status}'") from None

        contents = data.get("contents")
        if contents is None:
            contents = ""
        if not isinstance(contents, str):
            raise ProtocolError(
                f"'contents' must be a string, got {type(contents).__name__}"
            )

        request_id = data.get("request_id")
        # bool is an int subclass, reject it explicitly
        if request_id is not None and (
            not isinstance(request_id, int) or isinstance(request_id, bool)
        ):
            raise ProtocolError(f"'request_id' must be an integer, got {request_id!r}")

        return cls(status=status, contents=contents, request_id=request_id)


SendCallback = Callable[[PidgeonError | None], None]
"""
Completion callback of ClientConnection.send(). Receives None once the
frame has been handed to the socket, or the error that prevented it.
"""
