from typing import Protocol

from pidgeon.core.errors import PidgeonError
from pidgeon.core.models.message import Message


class ConnectionObserver(Protocol):
    """
    Receives the lifecycle events and decoded messages of one
    ClientConnection.

    All methods are invoked on the event loop, one at a time, never
    concurrently for the same connection. Implementations may therefore
    mutate their own state without locking, and may call
    `ClientConnection.disconnect()` from inside any of them.
    """

    def on_connect(self) -> None:
        """The socket is open and the read loop has started."""

    def on_message(self, message: Message) -> None:
        """
        A frame was received and decoded. Messages arrive in the order
        their frames were read.
        """

    def on_error(self, error: PidgeonError) -> None:
        """
        A transport, encode or decode failure happened. Transport errors
        are followed by `on_disconnect()` when the connection was up.
        """

    def on_disconnect(self) -> None:
        """The connection left the Connected state. Called once per connect."""
