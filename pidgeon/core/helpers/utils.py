import logging


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """
    Split "host:port" (or a bare host) into its parts.

    Raises ValueError when the port is not a number in the TCP range.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port

    if not port.isdigit() or not 0 < int(port) < 65536:
        raise ValueError(f"Invalid port in address '{address}'")

    return host or "127.0.0.1", int(port)
