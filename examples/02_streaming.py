"""Follow a command's output line by line.

Lines are yielded as soon as they arrive. Leaving the ``async with``
block closes the remote channel, which stops the remote command.
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

        stream = manager.exec_stream("for i in 1 2 3 4 5; do echo tick $i; sleep 1; done")
        async for line in stream:
            print(line)
        print(f"exit code: {stream.exit_code}")

        # Stop early: the remote `yes` is killed when the block exits
        async with manager.exec_stream("yes") as lines:
            async for n, line in aenumerate(lines):
                if n == 3:
                    break
                print(line)


async def aenumerate(iterable):
    n = 0
    async for item in iterable:
        yield n, item
        n += 1


if __name__ == "__main__":
    asyncio.run(main())
