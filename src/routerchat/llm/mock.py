"""Deterministic offline upstream for demos and tests."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, AsyncIterator

import httpx

DEFAULT_MOCK_MODELS: list[dict[str, Any]] = [
    {
        "id": "mock/echo-small",
        "name": "Mock Echo Small",
        "description": "Deterministic offline model.",
        "context_length": 8192,
        "pricing": {"prompt": "0.0000005", "completion": "0.0000015"},
    },
    {
        "id": "mock/echo-large",
        "name": "Mock Echo Large",
        "context_length": 32768,
        "pricing": {"prompt": "0.000003", "completion": "0.000015"},
    },
]


class MockUpstream:
    """Answers ``/chat/completions`` and ``/models`` without network access.

    Completion text is derived from a hash of the request, so identical
    requests always produce identical answers. Streaming bodies are emitted in
    ``chunk_size`` byte pieces to exercise incremental decoding.
    """

    def __init__(
        self,
        *,
        models: list[dict[str, Any]] | None = None,
        chunk_size: int = 16,
    ) -> None:
        self._models = models if models is not None else DEFAULT_MOCK_MODELS
        self._chunk_size = max(1, chunk_size)
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path.endswith("/models"):
            return httpx.Response(200, json={"data": self._models})
        if request.method == "POST" and path.endswith("/chat/completions"):
            body = json.loads(request.content or b"{}")
            text = _mock_text(body)
            if body.get("stream"):
                return httpx.Response(
                    200,
                    headers={"content-type": "text/event-stream"},
                    content=_split(_sse_body(body, text), self._chunk_size),
                )
            return httpx.Response(200, json=_completion_payload(body, text))
        return httpx.Response(404, json={"error": {"message": f"No mock route for {request.method} {path}"}})


def _mock_text(body: dict[str, Any]) -> str:
    digest = _stable_seed(body)
    label = "YES" if digest[0] % 2 == 0 else "NO"
    model = body.get("model", "mock")
    return f"Decision: {label}\nRationale: mock response for {model}."


def _stable_seed(body: dict[str, Any]) -> bytes:
    hasher = hashlib.sha256()
    hasher.update(str(body.get("model", "")).encode("utf-8"))
    for message in body.get("messages") or []:
        hasher.update(json.dumps(message, sort_keys=True).encode("utf-8"))
    return hasher.digest()


def _mock_usage(body: dict[str, Any], text: str) -> dict[str, int]:
    prompt_text = " ".join(str(message.get("content", "")) for message in body.get("messages") or [])
    prompt_tokens = max(1, len(prompt_text) // 4)
    completion_tokens = max(1, len(text) // 4)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def _completion_id(body: dict[str, Any]) -> str:
    return f"gen-mock-{_stable_seed(body).hex()[:12]}"


def _completion_payload(body: dict[str, Any], text: str) -> dict[str, Any]:
    return {
        "id": _completion_id(body),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": body.get("model", "mock"),
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": _mock_usage(body, text),
    }


def _sse_body(body: dict[str, Any], text: str) -> bytes:
    created = int(time.time())
    base = {
        "id": _completion_id(body),
        "object": "chat.completion.chunk",
        "created": created,
        "model": body.get("model", "mock"),
    }
    frames = [": OPENROUTER PROCESSING"]
    first = True
    for word in text.split(" "):
        delta: dict[str, Any] = {"content": word if first else f" {word}"}
        if first:
            delta["role"] = "assistant"
            first = False
        frames.append("data: " + json.dumps({**base, "choices": [{"index": 0, "delta": delta}]}))
    final = {**base, "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}], "usage": _mock_usage(body, text)}
    frames.append("data: " + json.dumps(final))
    frames.append("data: [DONE]")
    return ("\n\n".join(frames) + "\n\n").encode("utf-8")


async def _split(payload: bytes, size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(payload), size):
        yield payload[offset : offset + size]
