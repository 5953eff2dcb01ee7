"""Watch the connection status while the link drops and recovers.

Hosts and retry settings come from ``sshlink.toml``:

    [manager]
    backoff = [1, 2, 4, 8, 16, 30]

    [hosts.prod]
    host = "10.0.0.5"
    username = "deploy"
    private_key_path = "~/.ssh/id_ed25519"

Restart sshd on the host (or pull the network cable) while this runs.
"""

import asyncio

import sshlink


def on_change(connected: bool) -> None:
    print(f"[STATUS] {'connected' if connected else 'disconnected'}")


async def main() -> None:
    handlers = sshlink.setup_logging(sshlink.LogConfig(level="INFO"))
    manager = sshlink.ConnectionManager(sshlink.resolve_settings())
    manager.on_status_change(on_change)

    try:
        with sshlink.use_manager(manager):
            await sshlink.connect(sshlink.resolve_host("prod"))

            for _ in range(60):
                status = manager.status()
                if status.connected:
                    print(await sshlink.exec("date"), end="")
                else:
                    print(f"state={status.state} attempts={status.attempts} error={status.last_error}")
                await asyncio.sleep(2)
    finally:
        await manager.disconnect()
        sshlink.teardown_logging(handlers)


if __name__ == "__main__":
    asyncio.run(main())
