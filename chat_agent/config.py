"""Settings for the chat agent.

Uses pydantic-settings to load from the environment and the .env file in
the working directory (the one the setup wizard writes), with type
validation and the same defaults the bot has always shipped with.
"""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

from engine.llm import DEFAULT_API_URL, DEFAULT_MODEL, REQUEST_TIMEOUT

from .errors import ConfigurationError

ENV_FILE = ".env"

DEFAULT_BOT_NAME = "WhatsApp AI Assistant"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant responding to WhatsApp messages. "
    "Keep responses concise and friendly."
)
DEFAULT_REPLY_DELAY_MS = 2000

# Logger names come from winston in older .env files ("warn", "verbose", ...)
_LOG_LEVEL_ALIASES = {
    "warn": logging.WARNING,
    "verbose": logging.DEBUG,
    "silly": logging.DEBUG,
    "http": logging.INFO,
}


def parse_contact_list(raw: str) -> frozenset[str]:
    """Split a comma-separated contact list, dropping blanks."""
    return frozenset(c.strip() for c in raw.split(",") if c.strip())


class Settings(BaseSettings):
    # Completion provider
    groq_api_key: str = ""
    groq_api_url: str = DEFAULT_API_URL
    groq_model: str = DEFAULT_MODEL

    # Bot behaviour
    bot_name: str = DEFAULT_BOT_NAME
    auto_reply_enabled: bool = False
    reply_delay_ms: int = DEFAULT_REPLY_DELAY_MS
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Contact lists (comma-separated phone numbers with country code)
    allowed_contacts: str = ""
    blocked_contacts: str = ""

    # Limits
    max_history_turns: int = 10
    max_reconnect_attempts: int = 3

    # Timeouts (seconds)
    init_timeout_s: float = 120.0
    request_timeout_s: float = REQUEST_TIMEOUT

    # Operations
    log_level: str = "info"
    status_port: int = 0  # 0 disables the status endpoint

    model_config = {
        "env_file": ENV_FILE,
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("reply_delay_ms", mode="before")
    @classmethod
    def _lenient_delay(cls, value):
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return DEFAULT_REPLY_DELAY_MS

    @field_validator("groq_api_key", "groq_api_url", "groq_model", "log_level", mode="after")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def allowed(self) -> frozenset[str]:
        return parse_contact_list(self.allowed_contacts)

    @property
    def blocked(self) -> frozenset[str]:
        return parse_contact_list(self.blocked_contacts)

    @property
    def log_level_number(self) -> int:
        name = self.log_level.lower()
        if name in _LOG_LEVEL_ALIASES:
            return _LOG_LEVEL_ALIASES[name]
        level = logging.getLevelName(name.upper())
        return level if isinstance(level, int) else logging.INFO


def validate_settings(settings: Settings) -> Settings:
    """Fail fast on settings the bot cannot run without."""
    if not settings.groq_api_key:
        raise ConfigurationError("GROQ_API_KEY is required. Please set it in your .env file.")
    if not settings.groq_api_url:
        raise ConfigurationError("GROQ_API_URL is required. Please set it in your .env file.")
    return settings


def load_settings(**overrides) -> Settings:
    """Read settings from the environment and .env, then validate them."""
    return validate_settings(Settings(**overrides))
