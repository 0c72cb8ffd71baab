from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Iterable

import httpx

from routerchat.llm.client import ChatClient
from routerchat.llm.types import ChatOptions, Message, RetryConfig

TEST_API_KEY = "sk-or-test-0123456789"
BASE_URL = "https://upstream.test/api/v1"

Responder = Callable[[httpx.Request], Any]


class FakeUpstream:
    """Scripted upstream: the n-th request gets the n-th responder (the last one repeats)."""

    def __init__(self, *responders: Responder) -> None:
        self._responders = list(responders)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handle(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responders)) - 1
        return self._responders[index](request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float, cancel: asyncio.Event | None) -> bool:
        self.delays.append(delay)
        return False


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TrackingStream(httpx.AsyncByteStream):
    def __init__(self, parts: Iterable[bytes]) -> None:
        self._parts = list(parts)
        self.reads = 0
        self.closed = False

    async def __aiter__(self):
        for part in self._parts:
            self.reads += 1
            yield part

    async def aclose(self) -> None:
        self.closed = True


def json_response(status: int, payload: Any, headers: dict[str, str] | None = None) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload, headers=headers)

    return respond


def text_response(status: int, text: str) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=text)

    return respond


def sse_response(parts: Iterable[bytes], *, stream: TrackingStream | None = None) -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            stream=stream or TrackingStream(parts),
        )

    return respond


def connect_error(message: str = "Connection refused") -> Responder:
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)

    return respond


def completion_payload(text: str = "Hello!", model: str = "openai/gpt-4o-mini") -> dict[str, Any]:
    return {
        "id": "gen-123",
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


def chunk_payload(content: str | None, *, finish_reason: str | None = None, role: str | None = None) -> dict[str, Any]:
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return {
        "id": "gen-stream",
        "created": 1_700_000_000,
        "model": "openai/gpt-4o-mini",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def sse_frame(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def make_options(**overrides: Any) -> ChatOptions:
    params: dict[str, Any] = {
        "model": "openai/gpt-4o-mini",
        "messages": [Message(role="user", content="Hi")],
    }
    params.update(overrides)
    return ChatOptions(**params)


def make_client(upstream: FakeUpstream, **kwargs: Any) -> ChatClient:
    kwargs.setdefault("api_key", TEST_API_KEY)
    kwargs.setdefault("base_url", BASE_URL)
    kwargs.setdefault("retry_config", RetryConfig(max_retries=3, initial_delay=0.5, max_delay=4.0))
    kwargs.setdefault("sleep", RecordingSleep())
    return ChatClient(transport=upstream.transport(), **kwargs)
