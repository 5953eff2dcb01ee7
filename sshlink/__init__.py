"""sshlink - one persistent SSH connection, shared by every caller.

Example:

    from sshlink import ConnectConfig, ConnectionManager

    manager = ConnectionManager()
    await manager.connect(ConnectConfig(
        host="10.0.0.5",
        username="deploy",
        private_key_path="~/.ssh/id_ed25519",
    ))

    manager.on_status_change(lambda up: print("ssh", "up" if up else "down"))

    print(await manager.exec("uptime"))
    async with manager.exec_stream("docker logs -f web") as lines:
        async for line in lines:
            print(line)

    await manager.disconnect()
"""

# Configuration
from sshlink.config import (
    ConnectConfig,
    ManagerSettings,
    load_config,
    resolve_host,
    resolve_settings,
)

# Constants
from sshlink.constants import BACKOFF_TABLE, ConnectionState, FailureLevel

# Errors
from sshlink.errors import (
    CommandError,
    ConnectTimeout,
    CredentialError,
    HandshakeError,
    NotConnectedError,
    SSHLinkError,
    TransportError,
)

# Core
from sshlink.backoff import ReconnectPolicy, backoff_delay
from sshlink.channel import CommandResult, LineStream
from sshlink.lines import LineReassembler
from sshlink.manager import ConnectionManager, ConnectionStatus

# Shared instance and shortcuts
from sshlink.context import get_instance, use_manager
from sshlink.facade import (
    connect,
    disconnect,
    exec,
    exec_stream,
    is_connected,
    on_status_change,
    run,
)

# Logging
from sshlink.logging import LogConfig, setup_logging, teardown_logging

__all__ = [
    # Configuration
    "ConnectConfig",
    "ManagerSettings",
    "load_config",
    "resolve_host",
    "resolve_settings",
    # Constants
    "BACKOFF_TABLE",
    "ConnectionState",
    "FailureLevel",
    # Errors
    "SSHLinkError",
    "CredentialError",
    "HandshakeError",
    "ConnectTimeout",
    "NotConnectedError",
    "CommandError",
    "TransportError",
    # Core
    "ConnectionManager",
    "ConnectionStatus",
    "ReconnectPolicy",
    "backoff_delay",
    "CommandResult",
    "LineStream",
    "LineReassembler",
    # Shared instance
    "get_instance",
    "use_manager",
    "connect",
    "disconnect",
    "is_connected",
    "on_status_change",
    "exec",
    "run",
    "exec_stream",
    # Logging
    "LogConfig",
    "setup_logging",
    "teardown_logging",
]
