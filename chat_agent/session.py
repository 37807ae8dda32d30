"""Session controller — chat session lifecycle and reconnect backoff.

States:
  uninitialized -> awaiting_pairing   initialize() after a provider self-test
  awaiting_pairing -> ready           transport reports ready
  ready -> disconnected               transport reports a lost connection
  disconnected -> reconnecting        retry scheduled after 2**attempt seconds
  reconnecting -> ready | failed      failed once the retry budget is spent
  * -> destroyed                      shutdown(), terminal

Inbound messages are handed to the pipeline as independent tasks so a slow
completion or reply delay never holds up event delivery.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from gateway import transport as events
from gateway.transport import InboundMessage, Transport

from .errors import ConfigurationError, SessionTimeoutError
from .pipeline import MessagePipeline
from .scheduler import AsyncioScheduler, ScheduledTask, Scheduler

log = logging.getLogger("session")

MAX_RECONNECT_ATTEMPTS = 3
INIT_TIMEOUT = 120.0


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_PAIRING = "awaiting_pairing"
    READY = "ready"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class SessionStatus:
    session_state: SessionState
    active_conversations: int
    auto_reply_enabled: bool
    reconnect_attempts: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["session_state"] = self.session_state.value
        return data


class ConnectionProbe(Protocol):
    async def test_connection(self) -> bool: ...


class SessionController:
    """Owns the single chat session and wires its events to the pipeline."""

    def __init__(
        self,
        transport: Transport,
        probe: ConnectionProbe,
        pipeline: MessagePipeline,
        scheduler: Optional[Scheduler] = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        init_timeout: float = INIT_TIMEOUT,
        on_qr: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.transport = transport
        self.probe = probe
        self.pipeline = pipeline
        self.scheduler = scheduler or AsyncioScheduler()
        self.max_reconnect_attempts = max_reconnect_attempts
        self.init_timeout = init_timeout
        self._on_qr = on_qr

        self._state = SessionState.UNINITIALIZED
        self.reconnect_attempts = 0
        self._pending_reconnect: Optional[ScheduledTask] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()

        transport.on(events.QR, self._handle_qr)
        transport.on(events.AUTHENTICATED, self._handle_authenticated)
        transport.on(events.AUTH_FAILURE, self._handle_auth_failure)
        transport.on(events.READY, self._handle_ready)
        transport.on(events.DISCONNECTED, self._handle_disconnected)
        transport.on(events.MESSAGE, self._handle_message)

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            log.debug("Session state: %s -> %s", self._state.value, state.value)
            self._state = state

    # ── Lifecycle ─────────────────────────────────────────────

    async def initialize(self) -> None:
        """Self-test the provider, then bring the chat session up.

        Raises:
            ConfigurationError: the completion provider is unreachable.
            SessionTimeoutError: the transport did not initialize within init_timeout.
        """
        if self._state == SessionState.DESTROYED:
            raise RuntimeError("Session has been destroyed")

        log.info("Initializing chat session...")
        if not await self.probe.test_connection():
            raise ConfigurationError(
                "Failed to connect to the completion API. Please check your API key and configuration."
            )
        if self._state == SessionState.DESTROYED:
            raise RuntimeError("Session was destroyed during the provider self-test")

        self._set_state(SessionState.AWAITING_PAIRING)
        try:
            await asyncio.wait_for(self.transport.initialize(), timeout=self.init_timeout)
        except asyncio.TimeoutError as e:
            self._initialize_failed()
            raise SessionTimeoutError(
                f"Chat session initialization timed out after {self.init_timeout:.0f}s"
            ) from e
        except Exception:
            self._initialize_failed()
            raise
        log.info("Chat session initialization started successfully")

    def _initialize_failed(self) -> None:
        if self._state == SessionState.AWAITING_PAIRING:
            self._set_state(SessionState.DISCONNECTED)

    async def shutdown(self) -> None:
        """Tear the session down for good. Safe to call more than once."""
        if self._state == SessionState.DESTROYED:
            return
        self._set_state(SessionState.DESTROYED)

        if self._pending_reconnect is not None:
            self._pending_reconnect.cancel()
            self._pending_reconnect = None
        running = self._reconnect_task
        if running is not None and running is not asyncio.current_task():
            running.cancel()
            await asyncio.gather(running, return_exceptions=True)

        for task in list(self._inflight):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

        try:
            await self.transport.destroy()
            log.info("Chat session destroyed successfully")
        except Exception:
            log.exception("Error destroying chat session")

    def status(self) -> SessionStatus:
        return SessionStatus(
            session_state=self._state,
            active_conversations=self.pipeline.store.active_contact_count(),
            auto_reply_enabled=self.pipeline.auto_reply_enabled,
            reconnect_attempts=self.reconnect_attempts,
        )

    # ── Reconnect backoff ─────────────────────────────────────

    def _schedule_reconnect(self) -> None:
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            self._set_state(SessionState.FAILED)
            log.error(
                "Max reconnection attempts (%d) reached. Manual restart required.",
                self.max_reconnect_attempts,
            )
            return

        self.reconnect_attempts += 1
        delay = 2 ** self.reconnect_attempts
        self._set_state(SessionState.RECONNECTING)
        log.info(
            "Attempting to reconnect (%d/%d) in %ds...",
            self.reconnect_attempts, self.max_reconnect_attempts, delay,
        )
        self._pending_reconnect = self.scheduler.call_later(delay, self._reconnect)

    async def _reconnect(self) -> None:
        self._pending_reconnect = None
        if self._state != SessionState.RECONNECTING:
            return
        self._reconnect_task = asyncio.current_task()
        try:
            await self.initialize()
        except Exception as e:
            if self._state == SessionState.DESTROYED:
                log.debug("Reconnect abandoned, session destroyed")
                return
            log.error("Failed to reconnect (attempt %d): %s", self.reconnect_attempts, e)
            self._set_state(SessionState.DISCONNECTED)
            self._schedule_reconnect()
        finally:
            self._reconnect_task = None

    # ── Transport events ──────────────────────────────────────

    def _handle_qr(self, code: str) -> None:
        log.info("Pairing code received, scan it with your phone")
        if self._on_qr:
            self._on_qr(code)

    def _handle_authenticated(self) -> None:
        log.info("Chat client authenticated successfully")

    def _handle_auth_failure(self, reason: str) -> None:
        log.error("Chat client authentication failed: %s", reason)

    def _handle_ready(self) -> None:
        if self._state in (SessionState.DESTROYED, SessionState.FAILED):
            return
        self._set_state(SessionState.READY)
        self.reconnect_attempts = 0
        log.info("Chat client is ready")

    def _handle_disconnected(self, reason: str) -> None:
        if self._state in (SessionState.DESTROYED, SessionState.FAILED, SessionState.RECONNECTING):
            return
        log.warning("Chat client disconnected: %s", reason)
        self._set_state(SessionState.DISCONNECTED)
        self._schedule_reconnect()

    def _handle_message(self, message: InboundMessage) -> None:
        if self._state == SessionState.DESTROYED or message.from_me:
            return
        task = asyncio.get_running_loop().create_task(self.pipeline.handle(message))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def wait_idle(self) -> None:
        """Wait for every in-flight message to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
