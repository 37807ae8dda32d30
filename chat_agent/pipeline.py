"""Message pipeline — one inbound message in, at most one reply out.

Core flow:
  1. Skip if auto-reply is switched off
  2. Skip empty (media-only) messages
  3. Skip contacts the filter rejects
  4. Under the contact's lock: history -> completion -> append exchange
  5. Wait the artificial reply delay (this message only)
  6. Reply through the transport

Errors never escape handle(): one bad message must not take down the
session or stall the messages behind it.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Iterable, Protocol

from engine.conversation import ConversationStore
from engine.types import Turn
from gateway.transport import InboundMessage

from .contact_filter import ContactFilter

log = logging.getLogger("pipeline")

PREVIEW_LEN = 100


class PipelineOutcome(str, Enum):
    REPLIED = "replied"
    DISABLED = "disabled"
    EMPTY = "empty"
    FILTERED = "filtered"
    ERROR = "error"


class Completer(Protocol):
    async def generate(self, user_message: str, history: Iterable[Turn] = ()) -> str: ...


class Replier(Protocol):
    async def reply(self, message: InboundMessage, text: str) -> None: ...


class MessagePipeline:
    """Per-message orchestration between transport, store and completion client."""

    def __init__(
        self,
        completer: Completer,
        store: ConversationStore,
        contact_filter: ContactFilter,
        replier: Replier,
        auto_reply_enabled: bool = True,
        reply_delay_ms: int = 2000,
    ) -> None:
        self.completer = completer
        self.store = store
        self.contact_filter = contact_filter
        self.replier = replier
        self.auto_reply_enabled = auto_reply_enabled
        self.reply_delay_ms = reply_delay_ms

    async def handle(self, message: InboundMessage) -> PipelineOutcome:
        if not self.auto_reply_enabled:
            log.debug("Auto-reply is disabled, skipping message")
            return PipelineOutcome.DISABLED

        try:
            return await self._process(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            sender = getattr(message, "sender", "?")
            body = getattr(message, "body", "") or ""
            log.exception("Error handling message from %s: %r", sender, str(body)[:PREVIEW_LEN])
            return PipelineOutcome.ERROR

    async def _process(self, message: InboundMessage) -> PipelineOutcome:
        contact = message.sender
        text = (message.body or "").strip()
        if not text:
            log.debug("Skipping empty message from %s", contact)
            return PipelineOutcome.EMPTY

        if self.contact_filter.is_blocked(contact):
            log.info("Message from blocked contact ignored: %s", contact)
            return PipelineOutcome.FILTERED
        if not self.contact_filter.is_allowed(contact):
            log.info("Message from non-allowed contact ignored: %s", contact)
            return PipelineOutcome.FILTERED

        log.info("Processing message from %s: %r", message.display_name, text[:PREVIEW_LEN])

        async with self.store.lock_for(contact):
            history = self.store.get_history(contact)
            response = await self.completer.generate(text, history)
            self.store.append(contact, text, response)

        if self.reply_delay_ms > 0:
            await asyncio.sleep(self.reply_delay_ms / 1000)

        await self.replier.reply(message, response)
        log.info("Reply sent to %s (%d chars)", message.display_name, len(response))
        return PipelineOutcome.REPLIED
