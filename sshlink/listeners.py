"""Connection status listeners."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from loguru import logger

StatusListener: TypeAlias = Callable[[bool], None]
Unsubscribe: TypeAlias = Callable[[], None]


class StatusListeners:
    """Registry of status callbacks with isolated, best-effort dispatch.

    Each subscription gets its own opaque token, so the same callable may be
    registered twice and removed independently. A listener that raises is
    logged and skipped; the others still run.
    """

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: dict[object, StatusListener] = {}

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: StatusListener) -> Unsubscribe:
        token = object()
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def notify(self, connected: bool) -> None:
        # Snapshot so listeners may unsubscribe while being notified
        for listener in list(self._listeners.values()):
            try:
                listener(connected)
            except Exception:
                logger.opt(exception=True).warning(
                    "Status listener {listener!r} failed", listener=listener,
                )

    def clear(self) -> None:
        self._listeners.clear()
