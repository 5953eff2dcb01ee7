"""Test helpers. Not for production code paths."""

from __future__ import annotations

from sshlink import context
from sshlink.manager import ConnectionManager


def install_instance(manager: ConnectionManager) -> None:
    """Make ``manager`` the process-wide default returned by ``get_instance()``."""
    reset_instance()
    context._default = manager


def reset_instance() -> None:
    """Destroy and forget the process-wide manager.

    The next ``get_instance()`` builds a fresh, disconnected manager. The
    old transport is closed and the old manager is destroyed, so a late
    close event from it never triggers a reconnect.
    """
    manager = context._discard_default()
    if manager is not None:
        manager.destroy()
