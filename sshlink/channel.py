"""Per-command channel sinks.

A channel is opened for every ``exec`` / ``exec_stream`` call and receives
four kinds of events from the transport: stdout bytes, stderr bytes, a
close carrying the exit code, or an error. The sinks in this module turn
those events into a buffered ``CommandResult`` or a lazy stream of lines.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol, TypeAlias

from loguru import logger

from sshlink.constants import ENCODING
from sshlink.errors import TransportError
from sshlink.lines import LineReassembler

# =============================================================================
# Protocols
# =============================================================================


class ChannelSink(Protocol):
    """Receives the events of one remote command."""

    def on_stdout(self, data: bytes) -> None: ...

    def on_stderr(self, data: bytes) -> None: ...

    def on_close(self, exit_code: int) -> None: ...

    def on_error(self, exc: BaseException) -> None: ...


class ChannelHandle(Protocol):
    """Open remote channel, as returned by the transport."""

    def close(self) -> None: ...


ChannelOpener: TypeAlias = Callable[[ChannelSink], Awaitable[ChannelHandle]]


def _transport_error(exc: BaseException) -> TransportError:
    err = TransportError(f"Channel failed: {exc}")
    err.__cause__ = exc
    return err


# =============================================================================
# Buffered Execution
# =============================================================================


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a finished remote command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class BufferedChannel:
    """Accumulates stdout and stderr until the remote process exits."""

    __slots__ = ("_stdout", "_stderr", "_done")

    def __init__(self) -> None:
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._done: asyncio.Future[CommandResult] = asyncio.get_running_loop().create_future()

    def on_stdout(self, data: bytes) -> None:
        self._stdout.extend(data)

    def on_stderr(self, data: bytes) -> None:
        self._stderr.extend(data)

    def on_close(self, exit_code: int) -> None:
        if self._done.done():
            return
        self._done.set_result(
            CommandResult(
                exit_code=exit_code,
                stdout=self._stdout.decode(ENCODING, errors="replace"),
                stderr=self._stderr.decode(ENCODING, errors="replace"),
            )
        )

    def on_error(self, exc: BaseException) -> None:
        if not self._done.done():
            self._done.set_exception(_transport_error(exc))

    async def result(self) -> CommandResult:
        return await self._done


# =============================================================================
# Streamed Execution
# =============================================================================

_Item: TypeAlias = tuple[str, str | int | TransportError]


class LineStream:
    """Lazy, single-consumer async iterator over a command's stdout lines.

    The channel is opened on the first ``__anext__``. Lines are pushed into
    a queue by the channel callbacks and the consumer suspends on that
    queue until the next line, the close, or an error arrives. stderr is
    discarded; ``exit_code`` is set once the stream has ended.

    The stream is not restartable: once it has ended, further iteration
    yields nothing. Leaving ``async with`` or calling ``aclose()`` before
    the end closes the remote channel.

    Example:
        >>> async with manager.exec_stream("tail -n 100 app.log") as lines:
        ...     async for line in lines:
        ...         print(line)
    """

    def __init__(self, command: str, opener: ChannelOpener) -> None:
        self.command = command
        self.exit_code: int | None = None
        self._opener = opener
        self._queue: asyncio.Queue[_Item] = asyncio.Queue()
        self._reassembler = LineReassembler()
        self._channel: ChannelHandle | None = None
        self._started = False
        self._closed = False
        self._finished = False

    # -------------------------------------------------------------------------
    # Channel events
    # -------------------------------------------------------------------------

    def on_stdout(self, data: bytes) -> None:
        if self._closed or self._finished:
            return
        for line in self._reassembler.feed(data):
            self._queue.put_nowait(("line", line))

    def on_stderr(self, data: bytes) -> None:
        logger.trace("Discarding {n} stderr bytes from {cmd!r}", n=len(data), cmd=self.command)

    def on_close(self, exit_code: int) -> None:
        if self._closed:
            return
        self._closed = True
        if self._finished:
            return
        rest = self._reassembler.flush()
        if rest is not None:
            self._queue.put_nowait(("line", rest))
        self._queue.put_nowait(("end", exit_code))

    def on_error(self, exc: BaseException) -> None:
        if self._closed:
            return
        self._closed = True
        if self._finished:
            return
        self._queue.put_nowait(("error", _transport_error(exc)))

    # -------------------------------------------------------------------------
    # Async iterator protocol
    # -------------------------------------------------------------------------

    def __aiter__(self) -> LineStream:
        return self

    async def __anext__(self) -> str:
        if self._finished:
            raise StopAsyncIteration

        if not self._started:
            self._started = True
            try:
                self._channel = await self._opener(self)
            except BaseException:
                self._finished = True
                raise

        match await self._queue.get():
            case ("line", str() as line):
                return line
            case ("end", int() as code):
                self._finished = True
                self.exit_code = code
                raise StopAsyncIteration
            case ("error", TransportError() as err):
                self._finished = True
                raise err
            case item:
                raise AssertionError(f"unexpected stream item: {item!r}")

    async def aclose(self) -> None:
        """Stop consuming and close the remote channel if still open."""
        if self._finished:
            return
        self._finished = True
        if self._channel is not None and not self._closed:
            logger.debug("Closing abandoned stream channel for {cmd!r}", cmd=self.command)
            self._channel.close()

    async def __aenter__(self) -> LineStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
