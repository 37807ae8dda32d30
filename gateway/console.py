"""Console transport — chat with the agent from the terminal.

Stands in for a real chat platform during local development: the
"pairing code" is printed instead of a QR, every line typed becomes an
inbound message from one fixed contact, and replies are printed back.

Commands: quit/exit/q closes the console; EOF (Ctrl-D) is reported as a
lost connection so the reconnect path can be exercised by hand.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
from typing import Callable, Optional

from rich.console import Console
from rich.text import Text

from .transport import (
    AUTHENTICATED, DISCONNECTED, MESSAGE, QR, READY, EventEmitter, InboundMessage,
)

log = logging.getLogger("console")

_EOF = object()


class ConsoleTransport(EventEmitter):
    """Rich-powered REPL that behaves like a chat-platform session."""

    def __init__(
        self,
        contact: str = "console",
        bot_name: str = "Assistant",
        console: Optional[Console] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        super().__init__()
        self.contact = contact
        self.bot_name = bot_name
        self.console = console or Console()
        self._on_close = on_close
        self._lines: Optional[asyncio.Queue] = None
        self._reader: Optional[asyncio.Task] = None
        self._thread: Optional[threading.Thread] = None

    async def initialize(self) -> None:
        if self._reader and not self._reader.done():
            return
        loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()

        await self.emit(QR, secrets.token_hex(4).upper())
        await self.emit(AUTHENTICATED)
        await self.emit(READY)

        # stdin is read on a daemon thread so a pending input() never blocks shutdown
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._read_stdin, args=(loop,), name="console-input", daemon=True
            )
            self._thread.start()
        self._reader = loop.create_task(self._dispatch_lines())

    def _read_stdin(self, loop: asyncio.AbstractEventLoop) -> None:
        while True:
            try:
                line = self.console.input("[bold green]You:[/] ")
            except (EOFError, KeyboardInterrupt):
                line = _EOF
            try:
                loop.call_soon_threadsafe(self._push, line)
            except RuntimeError:
                return  # loop already closed
            if line is _EOF:
                return

    def _push(self, item) -> None:
        if self._lines is not None:
            self._lines.put_nowait(item)

    async def _dispatch_lines(self) -> None:
        while True:
            item = await self._lines.get()
            if item is _EOF:
                await self.emit(DISCONNECTED, "console input closed")
                return
            text = item.strip()
            if text.lower() in ("quit", "exit", "q"):
                self.console.print("[dim]Goodbye![/]")
                if self._on_close:
                    self._on_close()
                return
            await self.emit(
                MESSAGE, InboundMessage(sender=self.contact, body=item, sender_name="You", raw=item)
            )

    async def reply(self, message: InboundMessage, text: str) -> None:
        self.console.print(Text.assemble((f"{self.bot_name}: ", "bold blue"), text))

    async def destroy(self) -> None:
        if self._reader and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        self._reader = None
        self._lines = None
        log.debug("Console transport closed")
