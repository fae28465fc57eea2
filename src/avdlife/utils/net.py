from __future__ import annotations

import socket

import psutil


def is_listening(host: str, port: int, timeout: float = 0.6) -> bool:
    """True if a TCP connection to (host, port) succeeds within `timeout` seconds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def owner_info(port: int) -> str:
    """
    Describe the process listening on local TCP `port`, for log records.

    Returns "PID <pid>, name '<name>', user '<user>'" when the owner can be
    inspected, "PID <pid>" when it cannot (gone, or owned by another user),
    and "unknown" when no listener is visible. Listing sockets of other users
    needs elevated rights on macOS, which also yields "unknown".
    """
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.AccessDenied, OSError):
        return "unknown"
    listener = next(
        (
            c
            for c in connections
            if c.laddr and c.laddr.port == port and c.status == psutil.CONN_LISTEN
        ),
        None,
    )
    if listener is None:
        return "unknown"
    try:
        p = psutil.Process(listener.pid or 0)
        return f"PID {p.pid}, name '{p.name()}', user '{p.username()}'"
    except (psutil.Error, ValueError):
        return f"PID {listener.pid}"
