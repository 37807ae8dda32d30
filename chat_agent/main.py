"""Chat agent entry point — auto-replies to chat messages with an LLM.

Run with: python -m chat_agent.main [--debug] [--contact NAME]

Startup order:
  1. Load and validate settings (.env + environment), exit 1 if invalid
  2. Self-test the completion API, exit 1 if unreachable
  3. Bring the chat session up and serve until SIGINT/SIGTERM
  4. Tear the session down and exit 0

Uncaught errors and failed background tasks are logged and exit 1.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.console import Console

from engine.conversation import ConversationStore
from engine.llm import CompletionClient
from gateway.console import ConsoleTransport
from gateway.status import start_status_server
from gateway.transport import Transport

from .config import Settings, load_settings
from .contact_filter import ContactFilter
from .errors import ConfigurationError
from .pipeline import MessagePipeline
from .session import SessionController

log = logging.getLogger("agent")

console = Console()

LOG_DIR = Path("logs")


def _setup_logging(level: int) -> Path:
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / "agent.log"

    fmt = logging.Formatter("%(asctime)s %(name)-12s %(levelname)-8s %(message)s")

    stream = logging.StreamHandler()
    stream.setLevel(level)
    stream.setFormatter(fmt)

    filelog = logging.FileHandler(log_file)
    filelog.setLevel(level)
    filelog.setFormatter(fmt)

    logging.basicConfig(level=level, handlers=[stream, filelog], force=True)

    # httpx and aiohttp log every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    return log_file


def _show_pairing_code(code: str) -> None:
    console.print(f"\n[yellow]Pairing code:[/] [bold]{code}[/]")
    console.print("[dim]Scan or enter the code with your phone to connect the bot.[/]\n")


class ChatAgent:
    """Wires settings, completion client, store, filter and session together."""

    def __init__(self, settings: Settings, transport: Transport) -> None:
        self.settings = settings
        self.client = CompletionClient(
            api_key=settings.groq_api_key,
            api_url=settings.groq_api_url,
            model=settings.groq_model,
            system_prompt=settings.system_prompt,
            timeout=settings.request_timeout_s,
        )
        self.store = ConversationStore(max_turns=settings.max_history_turns)
        self.pipeline = MessagePipeline(
            completer=self.client,
            store=self.store,
            contact_filter=ContactFilter(settings.allowed, settings.blocked),
            replier=transport,
            auto_reply_enabled=settings.auto_reply_enabled,
            reply_delay_ms=settings.reply_delay_ms,
        )
        self.session = SessionController(
            transport=transport,
            probe=self.client,
            pipeline=self.pipeline,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            init_timeout=settings.init_timeout_s,
            on_qr=_show_pairing_code,
        )
        self.running = False
        self._status_runner = None

    def get_status(self) -> dict:
        return {
            "status": "running" if self.running else "stopped",
            **self.session.status().to_dict(),
        }

    async def start(self) -> None:
        s = self.settings
        console.print("[bold]Chat AI Agent[/] [dim]starting...[/]")
        console.print(f"  [dim]Model:[/] {s.groq_model}")
        console.print(f"  [dim]Bot name:[/] {s.bot_name}")
        console.print(f"  [dim]Auto-reply:[/] {'enabled' if s.auto_reply_enabled else 'disabled'}")
        if s.allowed:
            console.print(f"  [dim]Allowed contacts:[/] {len(s.allowed)}")
        if s.blocked:
            console.print(f"  [dim]Blocked contacts:[/] {len(s.blocked)}")
        console.print()

        if s.status_port:
            self._status_runner = await start_status_server(self.get_status, port=s.status_port)

        await self.session.initialize()
        self.running = True
        log.info("Chat AI Agent started successfully")

    async def stop(self) -> None:
        self.running = False
        await self.session.shutdown()
        await self.client.close()
        if self._status_runner is not None:
            await self._status_runner.cleanup()
            self._status_runner = None


async def _run(settings: Settings, contact: str) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    exit_code = 0

    def _on_async_error(_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        nonlocal exit_code
        log.error(
            "Unhandled async failure: %s", context.get("message"),
            exc_info=context.get("exception"),
        )
        exit_code = 1
        stop.set()

    def _on_signal(name: str) -> None:
        log.info("Received %s, shutting down gracefully...", name)
        console.print(f"\n[yellow]Received {name}, shutting down gracefully...[/]")
        stop.set()

    loop.set_exception_handler(_on_async_error)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt still ends asyncio.run()

    transport = ConsoleTransport(contact=contact, bot_name=settings.bot_name, on_close=stop.set)
    agent = ChatAgent(settings, transport)
    try:
        await agent.start()
        console.print("[green]Chat AI Agent is now active and ready to respond to messages![/]")
        console.print("[dim]Type a message to chat, 'quit' to exit.[/]\n")
        await stop.wait()
    finally:
        await agent.stop()
        log.info("Chat AI Agent shut down successfully")
    return exit_code


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Chat AI auto-reply agent")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--contact", default="console", help="Contact id for console messages")
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]Failed to start: {e}[/]")
        sys.exit(1)

    log_file = _setup_logging(logging.DEBUG if args.debug else settings.log_level_number)
    log.info("Configuration validated successfully, logging to %s", log_file)

    try:
        code = asyncio.run(_run(settings, args.contact))
    except KeyboardInterrupt:
        code = 0
    except Exception as e:
        log.exception("Failed to start chat agent")
        console.print(f"[red]Failed to start: {e}[/]")
        code = 1

    if code == 0:
        console.print("[green]Chat AI Agent shut down successfully[/]")
    sys.exit(code)


if __name__ == "__main__":
    main()
