"""Module-level shortcuts over the current ConnectionManager.

    import sshlink

    await sshlink.connect(sshlink.resolve_host("prod"))
    print(await sshlink.exec("uptime"))
    async for line in sshlink.exec_stream("docker logs -f web"):
        ...
"""

from __future__ import annotations

from sshlink.channel import CommandResult, LineStream
from sshlink.config import ConnectConfig
from sshlink.context import get_instance
from sshlink.listeners import StatusListener, Unsubscribe


async def connect(config: ConnectConfig) -> None:
    await get_instance().connect(config)


async def disconnect() -> None:
    await get_instance().disconnect()


def is_connected() -> bool:
    return get_instance().is_connected()


def on_status_change(listener: StatusListener) -> Unsubscribe:
    return get_instance().on_status_change(listener)


async def exec(command: str) -> str:  # noqa: A001 - public name
    return await get_instance().exec(command)


async def run(command: str) -> CommandResult:
    return await get_instance().run(command)


def exec_stream(command: str) -> LineStream:
    return get_instance().exec_stream(command)
