"""Chat transport interface — the narrow surface the agent needs.

A transport owns the real chat-platform connection (pairing, session
persistence, message delivery). The agent subscribes to a fixed set of
named events and calls back through initialize/destroy/reply.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

log = logging.getLogger("transport")

# Event names emitted by every transport
QR = "qr"                        # (code: str)
AUTHENTICATED = "authenticated"  # ()
AUTH_FAILURE = "auth_failure"    # (reason: str)
READY = "ready"                  # ()
DISCONNECTED = "disconnected"    # (reason: str)
MESSAGE = "message"              # (message: InboundMessage)

EVENTS = (QR, AUTHENTICATED, AUTH_FAILURE, READY, DISCONNECTED, MESSAGE)


@dataclass(frozen=True)
class InboundMessage:
    """A message received from the chat platform."""
    sender: str                 # normalized contact identifier
    body: str
    from_me: bool = False
    sender_name: Optional[str] = None
    raw: Any = None             # transport-specific handle, used for replies

    @property
    def display_name(self) -> str:
        return self.sender_name or self.sender


class Transport(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...

    async def initialize(self) -> None: ...

    async def destroy(self) -> None: ...

    async def reply(self, message: InboundMessage, text: str) -> None: ...


class EventEmitter:
    """Minimal named-event dispatcher. Handlers may be plain or async functions."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown transport event: {event}")
        self._handlers.setdefault(event, []).append(handler)

    async def emit(self, event: str, *args: Any) -> None:
        """Call every handler for event in subscription order, awaiting async ones."""
        handlers = self._handlers.get(event, [])
        if not handlers:
            log.debug("No handlers for %s", event)
        for handler in handlers:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
