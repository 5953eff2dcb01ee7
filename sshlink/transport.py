"""Paramiko-backed transport driven from asyncio.

Paramiko is blocking and thread based. Short blocking calls (the handshake
and opening a session channel) run in a bounded I/O thread pool. Calls that
block for as long as a connection or a command lives get their own daemon
thread instead, so long-running streams never starve the pool:

- one watcher thread per connection blocks on the paramiko transport
  thread and reports an unexpected loss through a callback;
- one reader thread per output stream (stdout and stderr) of each channel.

Results are handed back to the event loop with ``call_soon_threadsafe``.
The manager only sees the ``Transport`` protocol, so tests can plug in an
in-memory fake.
"""

from __future__ import annotations

import asyncio
import contextlib
import io
import threading
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol, TypeAlias

import paramiko
from loguru import logger

from sshlink.channel import ChannelHandle, ChannelSink
from sshlink.config import ConnectConfig
from sshlink.constants import (
    BUFFER_SIZE,
    CLOSE_TIMEOUT,
    CONNECT_TIMEOUT,
    MAX_IO_THREADS,
    FailureLevel,
)
from sshlink.errors import ConnectTimeout, CredentialError, HandshakeError, TransportError

# =============================================================================
# Protocols
# =============================================================================


class Transport(Protocol):
    """A connected SSH transport as seen by the connection manager."""

    async def open_channel(self, command: str, sink: ChannelSink) -> ChannelHandle:
        """Start ``command`` in a new channel, feeding its events to ``sink``."""
        ...

    def close(self) -> None:
        """Detach the loss callback and close the connection."""
        ...

    async def wait_closed(self) -> None: ...


LostCallback: TypeAlias = Callable[[Transport, BaseException | None], None]
Connector: TypeAlias = Callable[[ConnectConfig, bytes, LostCallback, float], Awaitable[Transport]]

# Short blocking paramiko calls: handshakes and channel opens
_IO_EXECUTOR = ThreadPoolExecutor(max_workers=MAX_IO_THREADS, thread_name_prefix="sshlink-io")


def _post(loop: asyncio.AbstractEventLoop, fn: Callable[..., Any], *args: Any) -> None:
    """Schedule ``fn(*args)`` on ``loop`` from a worker thread."""
    try:
        loop.call_soon_threadsafe(fn, *args)
    except RuntimeError:
        # Event loop already closed; nobody is left to receive the event
        logger.trace("Dropping {fn} after event loop shutdown", fn=getattr(fn, "__name__", fn))


# =============================================================================
# Key Loading
# =============================================================================

_KEY_TYPES: tuple[type[paramiko.PKey], ...] = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


def load_private_key(config: ConnectConfig, key_data: bytes) -> paramiko.PKey:
    """Parse key material read from ``config.private_key_path``.

    Raises:
        CredentialError: If no supported key type accepts the data.
    """
    try:
        text = key_data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CredentialError(config.private_key_path, "key file is not text") from e

    last_error: Exception | None = None
    for key_type in _KEY_TYPES:
        try:
            return key_type.from_private_key(io.StringIO(text), password=config.passphrase)
        except paramiko.PasswordRequiredException as e:
            raise CredentialError(config.private_key_path, "key is encrypted, passphrase required") from e
        except (paramiko.SSHException, ValueError) as e:
            last_error = e

    raise CredentialError(
        config.private_key_path,
        f"unsupported or invalid key ({last_error})",
    ) from last_error


def _handshake_error(config: ConnectConfig, timeout: float, exc: Exception) -> HandshakeError:
    match exc:
        case paramiko.AuthenticationException():
            return HandshakeError(FailureLevel.AUTHENTICATION, str(exc))
        case TimeoutError():
            return ConnectTimeout(config.host, timeout)
        case paramiko.SSHException() | EOFError():
            # EOFError: server hung up mid key exchange (sshd restarting)
            return HandshakeError(FailureLevel.SSH, str(exc) or "connection closed during handshake")
        case OSError():
            return HandshakeError(FailureLevel.SOCKET, str(exc) or type(exc).__name__)
        case _:
            return HandshakeError(FailureLevel.SSH, f"{type(exc).__name__}: {exc}")


# =============================================================================
# Channel Adapter
# =============================================================================


class _SessionChannel:
    """Pumps one paramiko channel into a ChannelSink.

    stdout and stderr are drained by two daemon threads; each chunk is
    delivered on the event loop in arrival order. After both reach EOF
    the exit status decides between ``on_close`` and ``on_error``: a
    channel that ends without an exit status while the transport is gone
    failed because the connection dropped.
    """

    __slots__ = ("_chan", "_sink", "_loop", "_thread")

    def __init__(self, chan: paramiko.Channel, sink: ChannelSink) -> None:
        self._chan = chan
        self._sink = sink
        self._loop = asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._pump, name="sshlink-channel", daemon=True)
        self._thread.start()

    def _read(self, read: Callable[[int], bytes], deliver: Callable[[bytes], None]) -> None:
        while data := read(BUFFER_SIZE):
            _post(self._loop, deliver, data)

    def _pump(self) -> None:
        stderr_failure: list[Exception] = []

        def read_stderr() -> None:
            try:
                self._read(self._chan.recv_stderr, self._sink.on_stderr)
            except Exception as e:
                stderr_failure.append(e)

        stderr_thread = threading.Thread(target=read_stderr, name="sshlink-stderr", daemon=True)
        stderr_thread.start()
        try:
            self._read(self._chan.recv, self._sink.on_stdout)
            stderr_thread.join()
            if stderr_failure:
                raise stderr_failure[0]
            status = self._chan.recv_exit_status()
        except Exception as e:
            _post(self._loop, self._sink.on_error, e)
            return

        transport = self._chan.get_transport()
        if status == -1 and (transport is None or not transport.is_active()):
            _post(self._loop, self._sink.on_error, ConnectionResetError("SSH connection lost"))
        else:
            _post(self._loop, self._sink.on_close, status)

    def close(self) -> None:
        self._chan.close()


# =============================================================================
# Transport
# =============================================================================


class ParamikoTransport:
    """SSH transport over a single paramiko connection.

    Example:
        >>> transport = await ParamikoTransport.open(config, key_bytes, on_lost)
        >>> handle = await transport.open_channel("uptime", sink)
        >>> transport.close()
    """

    def __init__(
        self,
        config: ConnectConfig,
        client: paramiko.SSHClient,
        on_lost: LostCallback,
    ) -> None:
        self.config = config
        self._client = client
        self._on_lost: LostCallback | None = on_lost
        self._loop = asyncio.get_running_loop()
        self._closed: asyncio.Future[None] = self._loop.create_future()
        threading.Thread(target=self._watch, name=f"sshlink-watch-{config.host}", daemon=True).start()

    @classmethod
    async def open(
        cls,
        config: ConnectConfig,
        key_data: bytes,
        on_lost: LostCallback,
        timeout: float = CONNECT_TIMEOUT,
    ) -> ParamikoTransport:
        """Connect and authenticate. Returns once the transport is ready.

        ``timeout`` bounds the TCP connect, the banner and authentication.

        Raises:
            CredentialError: If the key material cannot be parsed.
            ConnectTimeout: If paramiko gives up waiting on the server.
            HandshakeError: If the socket, authentication or SSH layer fails.
        """
        key = load_private_key(config, key_data)

        def connect() -> paramiko.SSHClient:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    config.host,
                    port=config.port,
                    username=config.username,
                    pkey=key,
                    timeout=timeout,
                    banner_timeout=timeout,
                    auth_timeout=timeout,
                    allow_agent=False,
                    look_for_keys=False,
                )
            except BaseException:
                client.close()
                raise
            if config.keepalive_interval:
                client.get_transport().set_keepalive(int(config.keepalive_interval))
            return client

        logger.debug("SSH: connecting to {target}", target=config.target)
        pending = asyncio.get_running_loop().run_in_executor(_IO_EXECUTOR, connect)
        try:
            client = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # The handshake thread cannot be interrupted; close whatever it produces
            pending.add_done_callback(_close_late_client)
            raise
        except Exception as e:
            raise _handshake_error(config, timeout, e) from e

        logger.debug("SSH: connected to {target}", target=config.target)
        return cls(config, client, on_lost)

    def _watch(self) -> None:
        transport = self._client.get_transport()
        exc = None
        if transport is not None:
            transport.join()
            exc = transport.get_exception()
        _post(self._loop, self._lost, exc)

    def _lost(self, exc: BaseException | None) -> None:
        if not self._closed.done():
            self._closed.set_result(None)
        callback, self._on_lost = self._on_lost, None
        if callback is not None:
            callback(self, exc)

    async def open_channel(self, command: str, sink: ChannelSink) -> ChannelHandle:
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise TransportError("Transport is closed")

        def start() -> paramiko.Channel:
            chan = transport.open_session()
            chan.exec_command(command)
            return chan

        loop = asyncio.get_running_loop()
        try:
            chan = await loop.run_in_executor(_IO_EXECUTOR, start)
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise TransportError(f"Cannot open channel: {e}") from e
        return _SessionChannel(chan, sink)

    def close(self) -> None:
        self._on_lost = None
        self._client.close()

    async def wait_closed(self) -> None:
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(asyncio.shield(self._closed), timeout=CLOSE_TIMEOUT)


def _close_late_client(future: asyncio.Future[paramiko.SSHClient]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


async def paramiko_connector(
    config: ConnectConfig,
    key_data: bytes,
    on_lost: LostCallback,
    timeout: float,
) -> Transport:
    """Default connector used by ConnectionManager."""
    return await ParamikoTransport.open(config, key_data, on_lost, timeout=timeout)
