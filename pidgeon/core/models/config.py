from dataclasses import dataclass


@dataclass
class ConnectionConfig:
    """
    Static configuration of a single ClientConnection.
    """
    host: str
    """
    IP address or hostname of the peer.
    """

    port: int
    """
    TCP port the peer listens on.
    """

    max_frame_size: int = 4 * 1024 * 1024  # 4MB
    """
    Largest payload a frame may declare. Bigger headers are treated as a
    desynchronized stream instead of being buffered.
    """

    read_size: int = 64 * 1024
    """
    Upper bound of bytes requested from the socket per read.
    """

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class SessionConfig:
    """
    Behaviour of a SessionProtocol on top of its connection.
    """
    connect_timeout: float | None = 5.0
    """
    Seconds allowed for the main session connect, None waits forever.
    """

    check_timeout: float = 2.0
    """
    Seconds a liveness probe may take, connect included.
    """

    notify_threshold: int = 80
    """
    Successful results shorter than this are also surfaced on the
    generic notification channel.
    """

    reconnect: bool = True
    """
    Reconnect automatically when the connection drops unexpectedly.
    """

    max_retries: int = 10
    """
    Reconnect attempts before giving up.
    """
