from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class SourceLocation:
    """
    Where a snippet came from, so its result can be shown next to it.
    The core carries it around as an opaque request context and never
    looks inside.
    """
    buffer: str
    """
    Editor buffer handle or file path.
    """

    line: int
    """
    1-based line the result should be attached to.
    """

    def __str__(self) -> str:
        return f"{self.buffer}:{self.line}"


class PeerStatus(StrEnum):
    """Answer of a liveness probe."""
    available = "available"
    busy = "busy"
    unreachable = "unreachable"
