# src/pgcontainer/ports.py
"""Host port allocation."""

import socket


def allocate_port(host: str = "127.0.0.1") -> int:
    """
    Return a TCP port that is unused at the time of the call.

    The kernel picks the port by binding to port 0. The socket is closed
    before returning, so another process could grab the port before Docker
    binds it; that race is accepted.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]
