"""Ownership of the shared ConnectionManager.

Applications create one manager at startup and hand it to their
collaborators with ``use_manager``; code that does not receive one
explicitly falls back to the process-wide default from ``get_instance``.

Example:
    from sshlink import ConnectionManager, use_manager, exec

    manager = ConnectionManager()
    with use_manager(manager):
        await manager.connect(config)
        await exec("uptime")   # runs on `manager`
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from sshlink.manager import ConnectionManager

_current: ContextVar[ConnectionManager | None] = ContextVar("sshlink_manager", default=None)
_default: ConnectionManager | None = None


def get_instance() -> ConnectionManager:
    """Return the manager bound to the current context, or the process default."""
    global _default
    manager = _current.get()
    if manager is not None:
        return manager
    if _default is None:
        _default = ConnectionManager()
    return _default


@contextmanager
def use_manager(manager: ConnectionManager) -> Iterator[ConnectionManager]:
    """Bind ``manager`` as the current manager for the enclosed block."""
    token = _current.set(manager)
    try:
        yield manager
    finally:
        _current.reset(token)


def _discard_default() -> ConnectionManager | None:
    global _default
    manager, _default = _default, None
    return manager
