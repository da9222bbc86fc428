import json
from typing import Any, AsyncIterator, Dict

import httpx
import pytest

# Ensure import path includes src
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from providers.groq import GROQ_BASE_URL, GroqAdapter
from relay.config import RelayConfig
from relay.errors import RateLimitExceeded, UpstreamError

CHAT_KEY = "POST /openai/v1/chat/completions"
MESSAGES = [
    {"role": "system", "content": "Ești asistent de călătorie."},
    {"role": "user", "content": "Recomandă-mi o destinație"},
]


class _MockTransport(httpx.AsyncBaseTransport):
    def __init__(self, handlers: Dict[str, Any]):
        self.handlers = handlers

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:  # type: ignore[override]
        key = f"{request.method} {request.url.path}"
        handler = self.handlers.get(key)
        if handler is None:
            return httpx.Response(404, request=request, json={"error": "not found"})
        return await handler(request)


def _adapter(handler) -> GroqAdapter:
    transport = _MockTransport({CHAT_KEY: handler})
    client = httpx.AsyncClient(base_url=GROQ_BASE_URL, transport=transport)
    return GroqAdapter(api_key="gsk-test", client=client)


async def _body() -> AsyncIterator[bytes]:
    yield b'data: {"choices":[{"delta":{"content":"Sal'
    yield b'ut"}}]}\n\ndata: [DONE]\n\n'


@pytest.mark.asyncio
async def test_groq_streams_with_configured_parameters():
    seen: Dict[str, Any] = {}

    async def chat_handler(request: httpx.Request) -> httpx.Response:
        seen["payload"] = json.loads(request.content)
        seen["auth"] = request.headers["authorization"]
        seen["accept"] = request.headers["accept"]
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=_body())

    adapter = _adapter(chat_handler)
    stream = await adapter.open_stream(MESSAGES)
    data = b"".join([chunk async for chunk in stream.chunks()])
    await stream.aclose()

    assert data == b'data: {"choices":[{"delta":{"content":"Salut"}}]}\n\ndata: [DONE]\n\n'
    payload = seen["payload"]
    assert payload["model"] == "llama-3.3-70b-versatile"
    assert payload["stream"] is True
    assert payload["max_tokens"] == 3072
    assert payload["temperature"] == 0.8
    assert payload["top_p"] == 0.95
    assert payload["messages"][0]["role"] == "system"
    assert payload["messages"][1]["content"] == "Recomandă-mi o destinație"
    assert seen["auth"] == "Bearer gsk-test"
    assert seen["accept"] == "text/event-stream"
    assert adapter.name == "groq"

    await adapter.aclose()


@pytest.mark.asyncio
async def test_groq_rate_limit_error():
    async def rl_handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"retry-after": "5"}, json={"error": "rate limited"})

    adapter = _adapter(rl_handler)

    with pytest.raises(RateLimitExceeded) as exc:
        await adapter.open_stream(MESSAGES)
    assert exc.value.status_code == 429
    assert exc.value.retry_after == "5"
    assert exc.value.source == "upstream"

    await adapter.aclose()


@pytest.mark.asyncio
async def test_groq_server_error_keeps_upstream_status():
    async def err_handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="overloaded")

    adapter = _adapter(err_handler)

    with pytest.raises(UpstreamError) as exc:
        await adapter.open_stream(MESSAGES)
    assert exc.value.status_code == 500
    assert exc.value.upstream_status == 503

    await adapter.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [httpx.ReadTimeout("read timed out"), httpx.ConnectError("connection refused")],
)
async def test_groq_transport_failures_become_upstream_errors(failure):
    async def failing(_: httpx.Request) -> httpx.Response:
        raise failure

    adapter = _adapter(failing)

    with pytest.raises(UpstreamError) as exc:
        await adapter.open_stream(MESSAGES)
    assert exc.value.upstream_status is None

    await adapter.aclose()


@pytest.mark.asyncio
async def test_groq_stream_interrupted_midway():
    async def broken_body() -> AsyncIterator[bytes]:
        yield b'data: {"choices":[{"delta":{"content":"Sal'
        raise httpx.ReadError("connection reset")

    async def chat_handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=broken_body())

    adapter = _adapter(chat_handler)
    stream = await adapter.open_stream(MESSAGES)

    with pytest.raises(UpstreamError):
        async for _ in stream.chunks():
            pass

    await stream.aclose()
    # closing twice is harmless
    await stream.aclose()
    await adapter.aclose()


def test_groq_from_config():
    config = RelayConfig(
        upstream_api_key="gsk-config",
        upstream_model="llama-3.1-8b-instant",
        max_tokens=512,
        temperature=0.2,
        top_p=0.5,
    )
    adapter = GroqAdapter.from_config(config)
    payload = adapter.build_payload([{"role": "user", "content": "hi"}])
    assert payload == {
        "model": "llama-3.1-8b-instant",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": True,
        "max_tokens": 512,
        "temperature": 0.2,
        "top_p": 0.5,
    }
