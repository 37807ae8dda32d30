"""LLM wrapper — OpenAI-compatible chat completions (Groq by default).

The client never lets a provider failure escape generate(): every error is
classified by HTTP status and turned into a short apology the bot can send
back to the user instead.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

import httpx

from .types import Turn, system_turn, user_turn

log = logging.getLogger("llm")

DEFAULT_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "llama3-70b-8192"

MAX_TOKENS = 500
TEMPERATURE = 0.7
REQUEST_TIMEOUT = 30.0

TEST_MESSAGE = "Hello, this is a test message."
PREVIEW_LEN = 100


class CompletionError(Exception):
    """Raised by the raw completion call. status is None for network failures."""

    def __init__(self, reason: str, status: Optional[int] = None):
        super().__init__(reason if status is None else f"HTTP {status}: {reason}")
        self.reason = reason
        self.status = status


class FailureKind(str, Enum):
    QUOTA = "quota"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"


_STATUS_KINDS = {
    402: FailureKind.QUOTA,
    401: FailureKind.AUTH,
    429: FailureKind.RATE_LIMIT,
    400: FailureKind.BAD_REQUEST,
}

FALLBACK_TEXT = {
    FailureKind.QUOTA: (
        "⚠️ I'm temporarily unavailable because the AI service quota or credits "
        "have run out. Please try again later."
    ),
    FailureKind.AUTH: (
        "🔑 I can't reach my AI service because of an authentication or "
        "configuration error. My owner needs to check the API key."
    ),
    FailureKind.RATE_LIMIT: (
        "⏱️ I'm receiving too many requests right now. Please wait a moment and try again."
    ),
    FailureKind.BAD_REQUEST: (
        "⚠️ There was an issue with the request format. Please try again."
    ),
    FailureKind.UNAVAILABLE: (
        "I'm sorry, I'm having trouble processing your message right now. "
        "Please try again later."
    ),
}


def classify(error: Exception) -> FailureKind:
    """Map a failure to the kind that selects its fallback text."""
    status = getattr(error, "status", None)
    return _STATUS_KINDS.get(status, FailureKind.UNAVAILABLE)


def fallback_for(kind: FailureKind) -> str:
    return FALLBACK_TEXT[kind]


def extract_text(data: dict) -> str:
    """Pull the trimmed first-choice text out of a completion body.

    Raises:
        CompletionError: the body does not have the chat-completions shape
            or the text is empty.
    """
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionError("invalid response format: no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise CompletionError("invalid response format: choice has no message")
    content = message.get("content")
    if not isinstance(content, str):
        raise CompletionError("invalid response format: content is not text")
    text = content.strip()
    if not text:
        raise CompletionError("invalid response format: empty content")
    return text


class CompletionClient:
    """Sends system prompt + history + new message to the provider."""

    def __init__(
        self,
        api_key: str,
        system_prompt: str,
        api_url: str = DEFAULT_API_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.system_prompt = system_prompt
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            log.info("async httpx client initialized for %s", self.api_url)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ── Provider API ──────────────────────────────────────────

    async def request(self, messages: list[dict], max_tokens: int = MAX_TOKENS) -> dict:
        """POST one non-streaming completion request and return the JSON body.

        Raises:
            CompletionError: on timeout, network failure, HTTP error status or
                a body that is not a JSON object.
        """
        client = await self._get_client()
        body = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": TEMPERATURE,
            "stream": False,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        log.debug("Completion request: model=%s, %d messages", self.model, len(messages))

        try:
            resp = await client.post(self.api_url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise CompletionError(f"request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise CompletionError(f"{type(e).__name__}: {e}") from e

        if resp.is_error:
            raise CompletionError(resp.reason_phrase or "request failed", status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise CompletionError("response body is not JSON") from e
        if not isinstance(data, dict):
            raise CompletionError("response body is not a JSON object")
        return data

    async def complete(self, messages: list[dict]) -> str:
        """Return the trimmed text of the first choice, or raise CompletionError."""
        return extract_text(await self.request(messages))

    # ── Public API ────────────────────────────────────────────

    def build_messages(self, user_message: str, history: Iterable[Turn] = ()) -> list[dict]:
        turns = [system_turn(self.system_prompt), *history, user_turn(user_message)]
        return [turn.to_message() for turn in turns]

    async def generate(self, user_message: str, history: Iterable[Turn] = ()) -> str:
        """Generate a reply. Always returns non-empty text, never raises.

        Args:
            user_message: The new message from the contact.
            history: Prior turns for this contact, oldest first.

        Returns:
            The model's reply, or a fallback apology chosen by failure kind.
        """
        messages = self.build_messages(user_message, history)
        preview = user_message[:PREVIEW_LEN]
        try:
            text = await self.complete(messages)
        except CompletionError as e:
            kind = classify(e)
            log.error(
                "Completion failed (status=%s, kind=%s): %s | message=%r",
                e.status, kind.value, e.reason, preview,
            )
            return fallback_for(kind)
        except Exception:
            log.exception("Unexpected completion error | message=%r", preview)
            return fallback_for(FailureKind.UNAVAILABLE)

        log.info(
            "Completion ok (%s): %d chars for message=%r",
            self.model, len(text), preview,
        )
        return text

    async def test_connection(self) -> bool:
        """Send a canned message and report whether the provider answered."""
        try:
            await self.complete(self.build_messages(TEST_MESSAGE))
        except CompletionError as e:
            log.error("Completion API connection test failed: %s", e)
            return False
        log.info("Completion API connection test successful")
        return True
