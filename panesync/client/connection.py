"""Connection lifecycle: connect, authenticate, detect loss, reconnect.

Phases:

    DISCONNECTED -> CONNECTING -> AUTHENTICATING -> LIVE
    LIVE/AUTHENTICATING/CONNECTING --(abnormal close)--> RECONNECTING -> CONNECTING
    any --(disconnect(), normal close, auth rejected, retries exhausted)--> DISCONNECTED

All transitions run synchronously inside transport, timer or foreground
callbacks on a single event loop; each callback finishes its state change
before returning.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Protocol

from loguru import logger

from panesync.client.credentials import CredentialStore
from panesync.client.foreground import ForegroundSignal, ForegroundSubscription
from panesync.client.models import NOT_CONNECTED, CommandResult
from panesync.client.protocol import (
    Authenticate,
    AuthenticatedEvent,
    AuthenticationFailedEvent,
    Command,
    DecodeError,
    DomainEvent,
    decode,
    describe,
    encode,
)
from panesync.client.timers import Scheduler, Timer
from panesync.client.transport import Transport, TransportFactory
from panesync.config.schema import ClientConfig
from panesync.constants import CLOSE_NORMAL


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    LIVE = "live"
    RECONNECTING = "reconnecting"


class DisconnectReason(str, Enum):
    """Why the manager is (or last was) disconnected."""

    NONE = "none"
    USER = "user"
    CLOSED = "closed"
    AUTH_REQUIRED = "auth_required"
    AUTH_REJECTED = "auth_rejected"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"


def backoff_delay_ms(attempt: int, initial_ms: int = 1000, max_ms: int = 30000) -> int:
    """Delay before reconnect attempt number `attempt` (0-based)."""
    return min(initial_ms * 2**attempt, max_ms)


@dataclass
class ConnectionState:
    """Process-wide connection state. Only ConnectionManager writes it."""

    reconnect_timer: Timer
    indicator_timer: Timer
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    reason: DisconnectReason = DisconnectReason.NONE
    transport: Transport | None = None
    attempt: int = 0
    user_id: str | None = None
    reconnecting_indicator: bool = False
    foreground_subscription: ForegroundSubscription | None = None
    last_close_code: int | None = None


@dataclass(frozen=True)
class ConnectionStatus:
    """Snapshot of the connection for presentation."""

    phase: ConnectionPhase
    reason: DisconnectReason
    attempt: int
    reconnecting: bool
    user_id: str | None
    last_close_code: int | None = None

    @property
    def is_live(self) -> bool:
        return self.phase is ConnectionPhase.LIVE

    @property
    def gave_up(self) -> bool:
        return self.reason is DisconnectReason.RECONNECT_EXHAUSTED

    @property
    def needs_login(self) -> bool:
        return self.reason in (DisconnectReason.AUTH_REQUIRED, DisconnectReason.AUTH_REJECTED)


class ConnectionObserver(Protocol):
    """Session-level reactions to connection lifecycle events."""

    def on_live(self) -> None: ...

    def on_event(self, event: DomainEvent) -> None: ...

    def on_resync(self) -> None: ...

    def on_connection_lost(self) -> None: ...

    def on_teardown(self) -> None: ...


StatusListener = Callable[[ConnectionStatus], None]

_ACTIVE_PHASES = (ConnectionPhase.CONNECTING, ConnectionPhase.AUTHENTICATING, ConnectionPhase.LIVE)


class ConnectionManager:
    """Owns the transport and its lifecycle."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        credentials: CredentialStore,
        scheduler: Scheduler,
        foreground: ForegroundSignal | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self._transport_factory = transport_factory
        self._credentials = credentials
        self._foreground = foreground
        self.config = config or ClientConfig()
        self.state = ConnectionState(
            reconnect_timer=Timer(scheduler, "reconnect"),
            indicator_timer=Timer(scheduler, "reconnecting-indicator"),
        )
        self._observer: ConnectionObserver | None = None
        self._status_listeners: list[StatusListener] = []

    # --- Wiring ---

    def set_observer(self, observer: ConnectionObserver) -> None:
        self._observer = observer

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener. Returns a function that removes it."""
        self._status_listeners.append(listener)

        def remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    @property
    def phase(self) -> ConnectionPhase:
        return self.state.phase

    @property
    def is_live(self) -> bool:
        return self.state.phase is ConnectionPhase.LIVE

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            phase=self.state.phase,
            reason=self.state.reason,
            attempt=self.state.attempt,
            reconnecting=self.state.reconnecting_indicator or self.state.phase is ConnectionPhase.RECONNECTING,
            user_id=self.state.user_id,
            last_close_code=self.state.last_close_code,
        )

    def _notify_status(self) -> None:
        status = self.status
        for listener in list(self._status_listeners):
            listener(status)

    def _set_phase(self, phase: ConnectionPhase, reason: DisconnectReason = DisconnectReason.NONE) -> None:
        if phase is not self.state.phase or reason is not self.state.reason:
            logger.info("Connection phase {} -> {} ({})", self.state.phase.value, phase.value, reason.value)
        self.state.phase = phase
        self.state.reason = reason
        self._notify_status()

    # --- Operations ---

    def connect(self) -> None:
        """Open a transport and authenticate. No-op while a connection is active."""
        if self.state.phase in _ACTIVE_PHASES:
            return
        self.state.reconnect_timer.cancel()

        token = self._credentials.read()
        if not token:
            logger.warning("No stored credential; login required")
            self._set_phase(ConnectionPhase.DISCONNECTED, DisconnectReason.AUTH_REQUIRED)
            return

        self._ensure_foreground_observer()
        transport = self._transport_factory()
        self.state.transport = transport
        self._set_phase(ConnectionPhase.CONNECTING)
        transport.start(
            partial(self._handle_open, transport, token),
            partial(self._handle_message, transport),
            partial(self._handle_close, transport),
        )

    def disconnect(self) -> None:
        """User-initiated disconnect: cancel timers, drop observers, close, reset."""
        self.state.reconnect_timer.cancel()
        self.state.indicator_timer.cancel()
        self.state.reconnecting_indicator = False
        if self.state.foreground_subscription is not None:
            self.state.foreground_subscription.remove()
            self.state.foreground_subscription = None

        transport = self.state.transport
        self.state.transport = None
        if transport is not None:
            transport.close(CLOSE_NORMAL, "client disconnect")

        self.state.attempt = 0
        self.state.user_id = None
        self._set_phase(ConnectionPhase.DISCONNECTED, DisconnectReason.USER)
        if self._observer:
            self._observer.on_teardown()

    def send(self, command: Command) -> CommandResult:
        """Send a command on the live connection."""
        transport = self.state.transport
        if self.state.phase is not ConnectionPhase.LIVE or transport is None:
            logger.debug("Rejecting {}: not connected", command.TYPE)
            return CommandResult.failure(NOT_CONNECTED)
        if not transport.send(encode(command)):
            logger.debug("Rejecting {}: transport not open", command.TYPE)
            return CommandResult.failure(NOT_CONNECTED)
        return CommandResult.success()

    def handle_foreground(self) -> None:
        """React to the host becoming visible again."""
        if self.state.phase is ConnectionPhase.LIVE:
            logger.debug("Foreground while live; resynchronizing")
            if self._observer:
                self._observer.on_resync()
            return

        logger.info("Foreground while {}; reconnecting now", self.state.phase.value)
        self.state.attempt = 0
        self.state.reconnect_timer.cancel()
        self.state.reconnecting_indicator = True
        self.state.indicator_timer.start(self.config.reconnecting_indicator_timeout_s, self._clear_indicator)
        self.connect()
        self._notify_status()

    # --- Internals ---

    def _ensure_foreground_observer(self) -> None:
        if self._foreground is None or self.state.foreground_subscription is not None:
            return
        self.state.foreground_subscription = self._foreground.subscribe(self.handle_foreground)

    def _clear_indicator(self) -> None:
        if self.state.reconnecting_indicator:
            logger.debug("Clearing stale reconnecting indicator")
            self.state.reconnecting_indicator = False
            self._notify_status()

    def _handle_open(self, transport: Transport, token: str) -> None:
        if transport is not self.state.transport:
            return
        self._set_phase(ConnectionPhase.AUTHENTICATING)
        transport.send(encode(Authenticate(token=token)))

    def _handle_message(self, transport: Transport, raw: str) -> None:
        if transport is not self.state.transport:
            return
        try:
            event = decode(raw)
        except DecodeError as e:
            logger.warning("Invalid event from server ({}): {}", e, describe(e.raw))
            return

        if isinstance(event, AuthenticatedEvent):
            self._handle_authenticated(event)
        elif isinstance(event, AuthenticationFailedEvent):
            self._handle_auth_rejected(event)
        elif self._observer:
            self._observer.on_event(event)

    def _handle_authenticated(self, event: AuthenticatedEvent) -> None:
        logger.info("Authenticated as user {}", event.user_id)
        self.state.attempt = 0
        self.state.user_id = event.user_id
        self.state.indicator_timer.cancel()
        self.state.reconnecting_indicator = False
        self._set_phase(ConnectionPhase.LIVE)
        if self._observer:
            self._observer.on_live()

    def _handle_auth_rejected(self, event: AuthenticationFailedEvent) -> None:
        logger.warning("Authentication failed: {}", event.reason)
        self._credentials.clear()
        self.state.reconnect_timer.cancel()
        self.state.indicator_timer.cancel()
        self.state.reconnecting_indicator = False
        transport = self.state.transport
        self.state.transport = None
        if transport is not None:
            transport.close(CLOSE_NORMAL, "authentication failed")
        self.state.user_id = None
        self._set_phase(ConnectionPhase.DISCONNECTED, DisconnectReason.AUTH_REJECTED)
        if self._observer:
            self._observer.on_teardown()

    def _handle_close(self, transport: Transport, code: int, reason: str) -> None:
        if transport is not self.state.transport:
            return
        self.state.transport = None
        self.state.last_close_code = code
        logger.info("Transport closed (code={}, reason={!r})", code, reason)
        if self._observer:
            self._observer.on_connection_lost()

        if code == CLOSE_NORMAL:
            self._set_phase(ConnectionPhase.DISCONNECTED, DisconnectReason.CLOSED)
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        max_attempts = self.config.reconnect_max_attempts
        if self.state.attempt >= max_attempts:
            logger.warning("Giving up after {} reconnect attempts", max_attempts)
            self._set_phase(ConnectionPhase.DISCONNECTED, DisconnectReason.RECONNECT_EXHAUSTED)
            return

        delay_ms = backoff_delay_ms(
            self.state.attempt,
            self.config.reconnect_initial_delay_ms,
            self.config.reconnect_max_delay_ms,
        )
        self.state.attempt += 1
        logger.info("Reconnecting in {}ms (attempt {}/{})", delay_ms, self.state.attempt, max_attempts)
        self.state.reconnect_timer.start(delay_ms / 1000, self.connect)
        self._set_phase(ConnectionPhase.RECONNECTING)
