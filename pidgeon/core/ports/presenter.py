from typing import Any, Protocol


class Presenter(Protocol):
    """
    Boundary between the client core and whatever shows results to the
    user (inline annotations, notifications, a terminal).

    The core passes contents through untouched: truncation, formatting
    and notification levels are entirely up to the implementation.
    """

    def present(self, content: str, context: Any | None, is_error: bool) -> None:
        """
        Show a result or an error.

        `context` is the opaque value the caller attached to the request,
        or None for notifications that do not belong to any request.
        """

    def status(self, text: str) -> None:
        """Show a peer status change (readiness, busy, connection state)."""
