"""Centralized constants and enums for sshlink.

Timeouts, backoff schedule and the connection state tags live here so the
manager, the config loader and the tests agree on a single source.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Connection States
# =============================================================================


class ConnectionState(StrEnum):
    """Lifecycle states of the managed connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"
    DESTROYED = "destroyed"


# =============================================================================
# Handshake Failure Levels
# =============================================================================


class FailureLevel(StrEnum):
    """Where in the handshake a connection attempt failed."""

    SOCKET = "client-socket"
    AUTHENTICATION = "client-authentication"
    SSH = "client-ssh"
    TIMEOUT = "client-timeout"
    ABORTED = "client-aborted"


# =============================================================================
# Timeouts (in seconds)
# =============================================================================

CONNECT_TIMEOUT: Final = 20.0
CLOSE_TIMEOUT: Final = 5.0
KEEPALIVE_INTERVAL: Final = 30.0

# =============================================================================
# I/O
# =============================================================================

BUFFER_SIZE: Final = 32 * 1024
MAX_IO_THREADS: Final = 64

# =============================================================================
# Reconnect Backoff (in seconds)
# =============================================================================

BACKOFF_TABLE: Final[tuple[float, ...]] = (1.0, 2.0, 4.0, 8.0, 16.0, 30.0)

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PORT: Final = 22
LINE_SEPARATOR: Final = "\n"
ENCODING: Final = "utf-8"
