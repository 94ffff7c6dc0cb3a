from __future__ import annotations

import json

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from voice_relay.config import Settings
from voice_relay.gemini import GeminiClient, GeminiError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_settings() -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key=SecretStr("test-key"),
        gemini_base_url=AnyHttpUrl("https://example.com/v1beta"),
    )


def make_client(handler) -> GeminiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient(make_settings(), http_client=http_client)


@pytest.mark.anyio
async def test_generate_reply_sends_single_user_turn() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {"content": {"parts": [{"text": "Hello "}, {"text": "there!"}]}}
                ]
            },
        )

    client = make_client(handler)
    reply = await client.generate_reply("hi")

    assert reply == "Hello there!"
    assert seen["url"] == (
        "https://example.com/v1beta/models/gemini-2.5-flash:generateContent"
    )
    assert seen["key"] == "test-key"
    assert seen["body"] == {"contents": [{"role": "user", "parts": [{"text": "hi"}]}]}


@pytest.mark.anyio
async def test_error_status_surfaces_provider_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}},
        )

    client = make_client(handler)
    with pytest.raises(GeminiError) as excinfo:
        await client.generate_reply("hi")

    assert excinfo.value.status_code == 429
    assert excinfo.value.detail == "Quota exceeded"


@pytest.mark.anyio
async def test_transport_failure_has_no_status_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(GeminiError) as excinfo:
        await client.generate_reply("hi")

    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


@pytest.mark.anyio
async def test_blocked_prompt_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    client = make_client(handler)
    with pytest.raises(GeminiError) as excinfo:
        await client.generate_reply("hi")

    assert excinfo.value.status_code == 502
    assert "SAFETY" in str(excinfo.value)


@pytest.mark.anyio
async def test_empty_candidate_text_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"content": {"parts": []}}]})

    client = make_client(handler)
    with pytest.raises(GeminiError):
        await client.generate_reply("hi")


def test_extract_error_detail_handles_plain_text() -> None:
    assert GeminiClient._extract_error_detail(b"Bad Gateway") == "Bad Gateway"
    assert GeminiClient._extract_error_detail(b"") == (
        "Gemini returned an empty error response."
    )
