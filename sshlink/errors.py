"""Exception taxonomy for sshlink.

Every error raised by the manager derives from ``SSHLinkError`` so callers
can catch the whole family at once. Library exceptions from paramiko are
always wrapped with ``raise ... from exc``.
"""

from __future__ import annotations

from sshlink.constants import FailureLevel


class SSHLinkError(Exception):
    """Base class for all sshlink errors."""


class CredentialError(SSHLinkError):
    """Private key could not be read or parsed at connect time."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load private key '{path}': {reason}")


class HandshakeError(SSHLinkError):
    """Transport failed before reaching the ready state.

    Attributes:
        level: Where the handshake failed (socket, authentication, ssh, timeout).
    """

    def __init__(self, level: FailureLevel | str, message: str) -> None:
        self.level = str(level)
        self.message = message
        super().__init__(f"SSH handshake failed [{self.level}]: {message}")


class ConnectTimeout(HandshakeError):
    """Transport did not become ready within the connect deadline."""

    def __init__(self, host: str, timeout: float) -> None:
        self.host = host
        self.timeout = timeout
        super().__init__(
            FailureLevel.TIMEOUT,
            f"{host} not ready after {timeout:g}s",
        )


class NotConnectedError(SSHLinkError):
    """A command was attempted while the manager is not connected."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"SSH not connected (state: {state})")


class CommandError(SSHLinkError):
    """Remote command exited non-zero and wrote to stderr."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Command failed ({exit_code}): {stderr}")


class TransportError(SSHLinkError):
    """Channel or socket failed while a command was running."""


__all__ = [
    "SSHLinkError",
    "CredentialError",
    "HandshakeError",
    "ConnectTimeout",
    "NotConnectedError",
    "CommandError",
    "TransportError",
]
