"""Interactive setup — writes the .env file the agent reads at startup.

Run with: python -m chat_agent.setup_wizard
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from dotenv import set_key
from rich.console import Console

from engine.llm import DEFAULT_API_URL

from .config import DEFAULT_BOT_NAME, DEFAULT_REPLY_DELAY_MS, DEFAULT_SYSTEM_PROMPT, ENV_FILE

console = Console()

MODELS = {
    "1": ("llama3-70b-8192", "recommended - high quality"),
    "2": ("llama3-8b-8192", "fastest"),
    "3": ("mixtral-8x7b-32768", "good for complex tasks"),
}
DEFAULT_MODEL_CHOICE = "1"

ENV_HEADER = "# Chat AI Agent configuration, written by the setup wizard\n"


def _ask(prompt: str) -> str:
    return console.input(prompt).strip()


def _confirm(prompt: str) -> bool:
    return _ask(prompt).lower() in ("y", "yes")


def collect_answers() -> Optional[dict[str, str]]:
    """Ask every question. Returns None if the user gave no API key."""
    console.print("Please provide the following information:\n")

    api_key = _ask("🔑 Groq API Key (required - get one free at console.groq.com): ")
    if not api_key:
        console.print("[red]API Key is required.[/] Get one from https://console.groq.com/")
        return None

    bot_name = _ask(f"🤖 Bot Name (default: {DEFAULT_BOT_NAME}): ") or DEFAULT_BOT_NAME

    console.print("\n🧠 Available Groq Models:")
    for number, (model, note) in MODELS.items():
        console.print(f"  {number}. {model} ({note})")
    choice = _ask(f"Choose model (1-{len(MODELS)}, default: {DEFAULT_MODEL_CHOICE}): ")
    model = MODELS.get(choice, MODELS[DEFAULT_MODEL_CHOICE])[0]

    console.print("\n💬 System Prompt (how the AI should behave):")
    system_prompt = _ask("   (default: helpful assistant): ") or DEFAULT_SYSTEM_PROMPT

    reply_delay = _ask(f"⏱️  Reply Delay in milliseconds (default: {DEFAULT_REPLY_DELAY_MS}): ")
    if not reply_delay.isdigit():
        reply_delay = str(DEFAULT_REPLY_DELAY_MS)

    allowed = ""
    if _confirm("🔒 Restrict to specific contacts only? (y/N): "):
        allowed = _ask("📱 Allowed contacts (comma-separated, international format): ")

    blocked = ""
    if _confirm("🚫 Block specific contacts? (y/N): "):
        blocked = _ask("📱 Blocked contacts (comma-separated, international format): ")

    return {
        "GROQ_API_KEY": api_key,
        "GROQ_API_URL": DEFAULT_API_URL,
        "GROQ_MODEL": model,
        "BOT_NAME": bot_name,
        "AUTO_REPLY_ENABLED": "true",
        "REPLY_DELAY_MS": reply_delay,
        "ALLOWED_CONTACTS": allowed,
        "BLOCKED_CONTACTS": blocked,
        "SYSTEM_PROMPT": system_prompt,
        "LOG_LEVEL": "info",
    }


def write_env(path: Path, values: dict[str, str]) -> None:
    """Replace path with a fresh .env holding values, in order."""
    path.write_text(ENV_HEADER, encoding="utf-8")
    for key, value in values.items():
        set_key(str(path), key, value)


def run(env_path: Path = Path(ENV_FILE)) -> int:
    console.print("[bold]🤖 Chat AI Agent Setup (Groq Edition)[/]")
    console.print("=" * 42 + "\n")

    if env_path.exists() and not _confirm("⚠️  .env file already exists. Overwrite? (y/N): "):
        console.print("Setup cancelled.")
        return 0

    answers = collect_answers()
    if answers is None:
        return 1

    write_env(env_path, answers)

    console.print(f"\n[green]Configuration saved to {env_path}![/]")
    console.print(f"📋 Selected Model: {answers['GROQ_MODEL']}")
    console.print("\n📋 Next steps:")
    console.print("1. Test API connection: python scripts/smoke_test.py")
    console.print("2. Start the bot: python -m chat_agent.main")
    console.print("3. Scan the pairing code with your phone")
    return 0


def main() -> None:
    try:
        code = run()
    except (EOFError, KeyboardInterrupt):
        console.print("\nSetup cancelled.")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
