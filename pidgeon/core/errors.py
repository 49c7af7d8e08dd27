class PidgeonError(Exception):
    """Base class for every error raised or reported by the client core."""


class TransportError(PidgeonError):
    """
    The socket failed to connect, read or write, or was closed while
    requests were still waiting for a reply. Always delivered through
    observer callbacks, never raised across the asynchronous boundary.
    """


class EncodeError(PidgeonError):
    """An outbound payload could not be serialized into a frame."""


class DecodeError(PidgeonError):
    """An inbound frame body could not be deserialized."""


class FrameTooLargeError(DecodeError):
    """
    A frame header declared more bytes than the configured maximum.

    The stream can no longer be trusted to be aligned on frame
    boundaries, so the connection is torn down.
    """


class ProtocolError(PidgeonError):
    """A decoded payload has an unknown status or a malformed field."""


class NotConnectedError(PidgeonError):
    """A send was attempted while the connection is not established."""


class AlreadyConnectingError(PidgeonError):
    """connect() was called while a previous attempt is still in flight."""


class BusyError(PidgeonError):
    """The peer is already serving another session."""


class DuplicateIdError(PidgeonError):
    """A request identifier was tracked twice."""
