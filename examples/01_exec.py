"""Run a few commands over one SSH connection.

Demonstrates:
- Connecting with a private key
- Buffered execution with exec() and run()
- Handling a failing command

Usage:
    SSHLINK_HOST=10.0.0.5 SSHLINK_USER=deploy python examples/01_exec.py
"""

import asyncio
import os

import sshlink


async def main() -> None:
    config = sshlink.ConnectConfig(
        host=os.environ.get("SSHLINK_HOST", "127.0.0.1"),
        username=os.environ.get("SSHLINK_USER", "root"),
        private_key_path=os.environ.get("SSHLINK_KEY", "~/.ssh/id_ed25519"),
    )

    async with sshlink.ConnectionManager() as manager:
        await manager.connect(config)

        print(await manager.exec("uname -a"), end="")

        result = await manager.run("ls /does-not-exist")
        print(f"exit={result.exit_code} stderr={result.stderr.strip()!r}")

        try:
            await manager.exec("ls /does-not-exist")
        except sshlink.CommandError as e:
            print(f"CommandError: {e}")


if __name__ == "__main__":
    asyncio.run(main())
