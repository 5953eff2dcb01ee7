"""Logging for sshlink.

sshlink logs through loguru and stays silent until an application opts in
with ``setup_logging``. Records emitted by a ConnectionManager carry the
connection in ``extra``: ``host`` and ``target`` (``user@host:port``).
Handlers can be narrowed to a subset of hosts, which keeps one noisy link
from drowning the others in a process that manages several.

Example:
    from sshlink import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig(level="DEBUG", hosts=("10.0.0.5",)))
    try:
        await manager.connect(config)
    finally:
        teardown_logging(handlers)
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeAlias

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

# Silent unless setup_logging() is called
logger.disable("sshlink")

LogLevel: TypeAlias = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <7}</level> | "
    "<cyan>{extra[target]}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {extra[target]} | {name}:{line} | {message}"

NO_TARGET = "-"


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Where sshlink logs go.

    Attributes:
        level: Minimum level for every handler.
        console: Log to stderr.
        file: Also log to this file.
        rotation: loguru rotation for ``file`` (e.g. "10 MB"); None keeps one file.
        hosts: Only keep records for these hosts. Records not tied to a
            connection are always kept. Empty keeps everything.
    """

    level: LogLevel = "INFO"
    console: bool = True
    file: str | None = None
    rotation: str | None = None
    hosts: tuple[str, ...] = ()


def _record_filter(hosts: tuple[str, ...]) -> Callable[[Record], bool]:
    def accept(record: Record) -> bool:
        if not record["name"].startswith("sshlink"):
            return False
        extra = record["extra"]
        extra.setdefault("target", NO_TARGET)
        host = extra.get("host")
        return not hosts or host is None or host in hosts

    return accept


def setup_logging(config: LogConfig) -> list[int]:
    """Enable sshlink logging and return handler IDs for ``teardown_logging``."""
    logger.enable("sshlink")
    accept = _record_filter(config.hosts)
    handler_ids: list[int] = []

    if config.console:
        handler_ids.append(
            logger.add(sys.stderr, level=config.level, format=CONSOLE_FORMAT, filter=accept, colorize=True)
        )

    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level=config.level,
                format=FILE_FORMAT,
                filter=accept,
                rotation=config.rotation,
                diagnose=False,  # tracebacks must not dump key material
            )
        )

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    """Remove the handlers and silence sshlink again."""
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("sshlink")
