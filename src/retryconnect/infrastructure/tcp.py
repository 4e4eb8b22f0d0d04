"""TCP connect primitive used by the CLI probe"""

import logging
import socket

logger = logging.getLogger(__name__)

TARGET = "tcp"


def open_tcp_connection(host: str, port: int, timeout: float = 5.0) -> socket.socket:
    """Open a TCP connection

    Args:
        host: Host name or address
        port: TCP port
        timeout: Timeout in seconds for this single attempt

    Returns:
        Connected socket

    Raises:
        OSError: If the connection cannot be established
    """
    logger.debug(f"TCP connect {host}:{port} (timeout {timeout}s)")
    return socket.create_connection((host, port), timeout=timeout)
