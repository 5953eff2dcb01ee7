"""Persistent SSH connection manager.

The manager owns exactly one transport at a time and is the only place
that knows whether the connection is usable. It drives an explicit state
machine:

    IDLE --connect--> CONNECTING --ready--> CONNECTED
    CONNECTED --unexpected close--> CLOSED --> RECONNECTING --backoff--> CONNECTING
    any --disconnect--> DESTROYED

An unexpected drop starts a single reconnect task that retries the
handshake with the backoff table until it succeeds or the manager is
destroyed. Commands are never queued or replayed: while the state is not
CONNECTED every ``exec`` / ``exec_stream`` fails with NotConnectedError.

All state is touched from the event loop only, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type

from sshlink.backoff import ReconnectPolicy, wait_backoff_table
from sshlink.channel import BufferedChannel, ChannelHandle, ChannelSink, CommandResult, LineStream
from sshlink.config import ConnectConfig, ManagerSettings
from sshlink.constants import ConnectionState, FailureLevel
from sshlink.errors import (
    CommandError,
    ConnectTimeout,
    CredentialError,
    HandshakeError,
    NotConnectedError,
    SSHLinkError,
)
from sshlink.listeners import StatusListener, StatusListeners, Unsubscribe
from sshlink.transport import Connector, Transport, paramiko_connector

if TYPE_CHECKING:
    from loguru import Logger


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Point-in-time snapshot of the manager."""

    state: ConnectionState
    attempts: int = 0
    host: str | None = None
    last_error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def connecting(self) -> bool:
        return self.state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING)


def _preview(command: str, limit: int = 80) -> str:
    return command[:limit] + "..." if len(command) > limit else command


class ConnectionManager:
    """Owns the lifecycle of one SSH connection shared by all callers.

    Args:
        settings: Connect timeout and backoff table.
        connector: Factory that opens a ready transport. Defaults to paramiko.
        sleep: Coroutine used for reconnect backoff delays.

    Example:
        >>> manager = ConnectionManager()
        >>> await manager.connect(ConnectConfig("10.0.0.5", "deploy", "~/.ssh/id_ed25519"))
        >>> await manager.exec("uptime")
        >>> async for line in manager.exec_stream("journalctl -f -u app"):
        ...     print(line)
        >>> await manager.disconnect()
    """

    def __init__(
        self,
        settings: ManagerSettings | None = None,
        *,
        connector: Connector = paramiko_connector,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or ManagerSettings()
        self._connector = connector
        self._sleep = sleep
        self._policy = ReconnectPolicy(table=self._settings.backoff)
        self._listeners = StatusListeners()
        self._state = ConnectionState.IDLE
        self._config: ConnectConfig | None = None
        self._transport: Transport | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._destroyed = False
        self._generation = 0
        self._reported = False
        self._last_error: str | None = None

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def _log(self) -> Logger:
        """Logger bound to the current host so records can be filtered per target."""
        if self._config is None:
            return logger
        return logger.bind(host=self._config.host, target=self._config.target)

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            attempts=self._policy.attempts,
            host=self._config.host if self._config else None,
            last_error=self._last_error,
        )

    def on_status_change(self, listener: StatusListener) -> Unsubscribe:
        """Call ``listener(connected)`` whenever the connected flag flips.

        Returns an idempotent unsubscribe function.
        """
        return self._listeners.subscribe(listener)

    def _publish(self, connected: bool) -> None:
        if connected == self._reported:
            return
        self._reported = connected
        self._listeners.notify(connected)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, config: ConnectConfig) -> None:
        """Open a new connection, replacing any existing one.

        Failures are raised to the caller and never retried automatically.

        Raises:
            CredentialError: If the private key cannot be read or parsed.
            ConnectTimeout: If the transport is not ready within the deadline.
            HandshakeError: If the transport fails before becoming ready.
        """
        self._destroyed = False
        self._generation += 1
        self._policy.reset()
        self._cancel_reconnect()
        if self._drop_transport() is not None:
            self._log.debug("Replacing existing SSH connection")
        self._config = config

        try:
            await self._establish(config, self._generation)
        except BaseException:
            if self._state is not ConnectionState.CONNECTED:
                self._publish(False)
            raise
        self._publish(True)

    async def disconnect(self) -> None:
        """Tear down the connection and stop reconnecting. Never raises."""
        transport = self.destroy()
        if transport is not None:
            await transport.wait_closed()

    def destroy(self) -> Transport | None:
        """Synchronous teardown: mark destroyed, cancel reconnects, close transport.

        Returns the closed transport so callers may wait for it.
        """
        was_destroyed = self._destroyed
        self._destroyed = True
        self._generation += 1
        self._cancel_reconnect()
        transport = self._drop_transport()
        self._state = ConnectionState.DESTROYED
        if not was_destroyed:
            self._log.info("SSH connection manager destroyed")
        self._publish(False)
        return transport

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Transport handling
    # -------------------------------------------------------------------------

    def _read_key(self, config: ConnectConfig) -> bytes:
        try:
            return config.key_path.read_bytes()
        except OSError as e:
            raise CredentialError(config.private_key_path, e.strerror or str(e)) from e

    async def _establish(self, config: ConnectConfig, generation: int) -> None:
        """Run one handshake; on success the new transport becomes current."""
        self._state = ConnectionState.CONNECTING
        timeout = self._settings.connect_timeout
        try:
            key_data = self._read_key(config)
            transport = await asyncio.wait_for(
                self._connector(config, key_data, self._on_transport_lost, timeout),
                timeout=timeout,
            )
        except TimeoutError as e:
            self._handshake_failed(generation, e)
            raise ConnectTimeout(config.host, timeout) from e
        except SSHLinkError as e:
            self._handshake_failed(generation, e)
            raise
        except Exception as e:
            self._handshake_failed(generation, e)
            raise HandshakeError(FailureLevel.SSH, f"{type(e).__name__}: {e}") from e
        except asyncio.CancelledError:
            if generation == self._generation and not self._destroyed:
                self._state = ConnectionState.CLOSED
            raise

        if generation != self._generation:
            # A newer connect() or disconnect() ran while we were waiting
            transport.close()
            raise HandshakeError(FailureLevel.ABORTED, "superseded by a newer connect or disconnect")

        self._transport = transport
        self._state = ConnectionState.CONNECTED
        self._policy.reset()
        self._last_error = None
        self._log.info("SSH connected to {target}", target=config.target)

    def _handshake_failed(self, generation: int, exc: BaseException) -> None:
        if generation != self._generation:
            return
        self._last_error = str(exc) or type(exc).__name__
        if not self._destroyed:
            self._state = ConnectionState.CLOSED

    def _drop_transport(self) -> Transport | None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
        return transport

    def _on_transport_lost(self, transport: Transport, exc: BaseException | None) -> None:
        if transport is not self._transport:
            self._log.debug("Ignoring close of a stale SSH transport")
            return

        self._transport = None
        transport.close()
        self._state = ConnectionState.CLOSED
        self._last_error = str(exc) if exc else "connection closed"
        self._log.warning("SSH connection lost: {reason}", reason=self._last_error)
        self._publish(False)
        self._schedule_reconnect()

    # -------------------------------------------------------------------------
    # Reconnect
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._destroyed or self._config is None:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._state = ConnectionState.RECONNECTING
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect(self._config, self._generation),
        )

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()

    def _stop_when_destroyed(self, retry_state: RetryCallState) -> bool:
        return self._destroyed

    def _after_failed_attempt(self, retry_state: RetryCallState) -> None:
        self._policy.record_failure()
        if not self._destroyed:
            self._state = ConnectionState.RECONNECTING

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self._log.warning(
            "Reconnect attempt {n} failed: {error}. Retrying in {delay:g}s",
            n=retry_state.attempt_number, error=exc, delay=delay,
        )

    async def _reconnect(self, config: ConnectConfig, generation: int) -> None:
        delay = self._policy.next_delay()
        self._log.info("Reconnecting to {target} in {delay:g}s", target=config.target, delay=delay)
        await self._sleep(delay)

        retrying = AsyncRetrying(
            wait=wait_backoff_table(self._policy),
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            stop=self._stop_when_destroyed,
            after=self._after_failed_attempt,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._establish(config, generation)
        except Exception as e:
            # Only reachable once destroyed; nothing left to retry
            self._log.debug("Reconnect loop stopped: {error}", error=e)
            return
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

        self._publish(True)
        self._log.info("SSH reconnected to {target}", target=config.target)

    # -------------------------------------------------------------------------
    # Command execution
    # -------------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._state is not ConnectionState.CONNECTED or self._transport is None:
            raise NotConnectedError(self._state)
        return self._transport

    async def _open_channel(self, command: str, sink: ChannelSink) -> ChannelHandle:
        transport = self._require_transport()
        self._log.debug("SSH exec: {cmd}", cmd=_preview(command))
        return await transport.open_channel(command, sink)

    async def run(self, command: str) -> CommandResult:
        """Execute ``command`` and return exit code, stdout and stderr.

        Raises:
            NotConnectedError: If the manager is not connected.
            TransportError: If the channel fails before the command exits.
        """
        sink = BufferedChannel()
        await self._open_channel(command, sink)
        result = await sink.result()
        self._log.debug("SSH exec: exit_code={code}", code=result.exit_code)
        return result

    async def exec(self, command: str) -> str:
        """Execute ``command`` and return its stdout.

        A non-zero exit is only an error when the command also wrote to
        stderr; a silent non-zero exit returns stdout.

        Raises:
            NotConnectedError: If the manager is not connected.
            CommandError: If the exit code is non-zero and stderr is not empty.
            TransportError: If the channel fails before the command exits.
        """
        result = await self.run(command)
        stderr = result.stderr.strip()
        if result.exit_code != 0 and stderr:
            raise CommandError(command, result.exit_code, stderr)
        return result.stdout

    def exec_stream(self, command: str) -> LineStream:
        """Stream stdout lines of ``command`` as they arrive.

        The channel is opened on first iteration, so NotConnectedError is
        raised from the first ``__anext__``. stderr is discarded.
        """
        return LineStream(command, functools.partial(self._open_channel, command))
