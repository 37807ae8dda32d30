import logging

import pytest

from chat_agent.config import (
    DEFAULT_REPLY_DELAY_MS, Settings, load_settings, parse_contact_list, validate_settings,
)
from chat_agent.errors import ConfigurationError

ENV_VARS = (
    "GROQ_API_KEY", "GROQ_API_URL", "GROQ_MODEL", "BOT_NAME", "AUTO_REPLY_ENABLED",
    "REPLY_DELAY_MS", "ALLOWED_CONTACTS", "BLOCKED_CONTACTS", "SYSTEM_PROMPT", "LOG_LEVEL",
    "STATUS_PORT", "MAX_HISTORY_TURNS", "MAX_RECONNECT_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.groq_api_url == "https://api.groq.com/openai/v1/chat/completions"
    assert settings.groq_model == "llama3-70b-8192"
    assert settings.auto_reply_enabled is False
    assert settings.reply_delay_ms == 2000
    assert settings.max_history_turns == 10
    assert settings.max_reconnect_attempts == 3
    assert settings.init_timeout_s == 120.0
    assert settings.request_timeout_s == 30.0
    assert settings.allowed == frozenset()
    assert settings.blocked == frozenset()


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
    monkeypatch.setenv("AUTO_REPLY_ENABLED", "true")
    monkeypatch.setenv("REPLY_DELAY_MS", "500")
    monkeypatch.setenv("ALLOWED_CONTACTS", " +1555, +1666 ,,")
    monkeypatch.setenv("BLOCKED_CONTACTS", "+1999")

    settings = load_settings(_env_file=None)

    assert settings.groq_api_key == "gsk_test"
    assert settings.auto_reply_enabled is True
    assert settings.reply_delay_ms == 500
    assert settings.allowed == {"+1555", "+1666"}
    assert settings.blocked == {"+1999"}


def test_reads_env_file(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("GROQ_API_KEY=from-file\nBOT_NAME=Helper\n")
    settings = Settings(_env_file=env_file)
    assert settings.groq_api_key == "from-file"
    assert settings.bot_name == "Helper"


@pytest.mark.parametrize("raw", ["soon", "", "2.5s"])
def test_invalid_reply_delay_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("REPLY_DELAY_MS", raw)
    assert Settings(_env_file=None).reply_delay_ms == DEFAULT_REPLY_DELAY_MS


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="GROQ_API_KEY"):
        load_settings(_env_file=None)


def test_blank_api_url_is_a_configuration_error() -> None:
    settings = Settings(_env_file=None, groq_api_key="k", groq_api_url="  ")
    with pytest.raises(ConfigurationError, match="GROQ_API_URL"):
        validate_settings(settings)


@pytest.mark.parametrize(
    "name, level",
    [
        ("info", logging.INFO),
        ("DEBUG", logging.DEBUG),
        ("warn", logging.WARNING),
        ("error", logging.ERROR),
        ("verbose", logging.DEBUG),
        ("chatty", logging.INFO),
    ],
)
def test_log_level_names(name: str, level: int) -> None:
    assert Settings(_env_file=None, log_level=name).log_level_number == level


def test_parse_contact_list() -> None:
    assert parse_contact_list("") == frozenset()
    assert parse_contact_list("a, b ,a") == {"a", "b"}
