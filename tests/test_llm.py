import asyncio

import httpx
import pytest

from engine.llm import (
    FALLBACK_TEXT, CompletionClient, CompletionError, FailureKind, classify, extract_text,
    fallback_for,
)
from engine.types import assistant_turn, user_turn
from fakes import FakeProvider


def make_client(provider: FakeProvider, **kwargs) -> CompletionClient:
    return CompletionClient(
        api_key="test-key",
        system_prompt="Be brief.",
        api_url="https://llm.test/v1/chat/completions",
        model="llama3-70b-8192",
        transport=provider.transport(),
        **kwargs,
    )


def generate(provider: FakeProvider, text: str = "hello", history=()) -> str:
    async def scenario() -> str:
        client = make_client(provider)
        try:
            return await client.generate(text, history)
        finally:
            await client.close()

    return asyncio.run(scenario())


def test_generate_sends_system_history_and_user_message() -> None:
    provider = FakeProvider(content="  Hi!  ")
    history = [user_turn("earlier"), assistant_turn("earlier reply")]

    reply = generate(provider, "hello", history)

    assert reply == "Hi!"
    assert len(provider.requests) == 1
    body = provider.requests[0]
    assert body["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "earlier"},
        {"role": "assistant", "content": "earlier reply"},
        {"role": "user", "content": "hello"},
    ]
    assert body["model"] == "llama3-70b-8192"
    assert body["max_tokens"] == 500
    assert body["temperature"] == 0.7
    assert body["stream"] is False
    assert provider.headers[0]["authorization"] == "Bearer test-key"


@pytest.mark.parametrize(
    "status, kind",
    [
        (402, FailureKind.QUOTA),
        (401, FailureKind.AUTH),
        (429, FailureKind.RATE_LIMIT),
        (400, FailureKind.BAD_REQUEST),
        (500, FailureKind.UNAVAILABLE),
        (503, FailureKind.UNAVAILABLE),
    ],
)
def test_http_errors_map_to_their_fallback(status: int, kind: FailureKind) -> None:
    reply = generate(FakeProvider(status=status))
    assert reply == FALLBACK_TEXT[kind]


def test_authentication_fallback_mentions_configuration() -> None:
    reply = generate(FakeProvider(status=401))
    assert "authentication" in reply.lower()


def test_rate_limit_fallback_asks_to_wait() -> None:
    reply = generate(FakeProvider(status=429))
    assert "too many requests" in reply.lower()


def test_timeout_yields_generic_fallback() -> None:
    provider = FakeProvider(error=httpx.ReadTimeout("timed out"))
    assert generate(provider) == fallback_for(FailureKind.UNAVAILABLE)


def test_network_error_yields_generic_fallback() -> None:
    provider = FakeProvider(error=httpx.ConnectError("connection refused"))
    assert generate(provider) == fallback_for(FailureKind.UNAVAILABLE)


def test_empty_completion_is_treated_as_failure() -> None:
    reply = generate(FakeProvider(content="   "))
    assert reply == fallback_for(FailureKind.UNAVAILABLE)


def test_fallback_texts_are_never_empty() -> None:
    assert all(text.strip() for text in FALLBACK_TEXT.values())
    assert set(FALLBACK_TEXT) == set(FailureKind)


def test_classify_uses_status_only() -> None:
    assert classify(CompletionError("x", status=401)) is FailureKind.AUTH
    assert classify(CompletionError("x")) is FailureKind.UNAVAILABLE
    assert classify(RuntimeError("boom")) is FailureKind.UNAVAILABLE


def test_complete_raises_with_status() -> None:
    async def scenario() -> None:
        client = make_client(FakeProvider(status=429))
        try:
            with pytest.raises(CompletionError) as excinfo:
                await client.complete([{"role": "user", "content": "hi"}])
            assert excinfo.value.status == 429
        finally:
            await client.close()

    asyncio.run(scenario())


def test_test_connection_reports_success_and_failure() -> None:
    async def scenario() -> tuple[bool, bool]:
        good = make_client(FakeProvider())
        bad = make_client(FakeProvider(status=401))
        try:
            return await good.test_connection(), await bad.test_connection()
        finally:
            await good.close()
            await bad.close()

    assert asyncio.run(scenario()) == (True, False)


def test_test_connection_never_raises_on_network_failure() -> None:
    async def scenario() -> bool:
        client = make_client(FakeProvider(error=httpx.ConnectError("down")))
        try:
            return await client.test_connection()
        finally:
            await client.close()

    assert asyncio.run(scenario()) is False


MALFORMED_BODIES = [
    {},
    {"choices": {}},
    {"choices": ["not an object"]},
    {"choices": [{"message": "hi"}]},
    {"choices": [{"message": {"content": 42}}]},
    {"choices": [{"message": {"content": None}}]},
]


@pytest.mark.parametrize("body", MALFORMED_BODIES)
def test_extract_text_rejects_malformed_bodies(body: dict) -> None:
    with pytest.raises(CompletionError) as excinfo:
        extract_text(body)
    assert excinfo.value.status is None


def test_extract_text_trims_first_choice() -> None:
    body = {"choices": [{"message": {"content": "  hi  "}}, {"message": {"content": "no"}}]}
    assert extract_text(body) == "hi"


@pytest.mark.parametrize("body", MALFORMED_BODIES)
def test_malformed_success_body_fails_connection_test_and_falls_back(body: dict) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))

    async def scenario() -> tuple[bool, str]:
        client = CompletionClient(
            api_key="test-key", system_prompt="Be brief.", transport=transport,
        )
        try:
            return await client.test_connection(), await client.generate("hello")
        finally:
            await client.close()

    assert asyncio.run(scenario()) == (False, fallback_for(FailureKind.UNAVAILABLE))
