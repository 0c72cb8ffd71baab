from __future__ import annotations

import asyncio
import json
import logging
import random

import httpx
import pytest

from routerchat.llm.errors import ErrorKind, OpenRouterError
from routerchat.llm.streaming import SSEDecoder
from routerchat.llm.types import ChatChunk
from tests.utils import (
    FakeUpstream,
    TrackingStream,
    chunk_payload,
    connect_error,
    json_response,
    make_client,
    make_options,
    sse_frame,
    sse_response,
)

STREAM_BYTES = b"".join(
    [
        b": OPENROUTER PROCESSING\n\n",
        sse_frame(chunk_payload("Zaż", role="assistant")),
        sse_frame(chunk_payload("ółć gęślą 🦄")),
        b"event: ping\n\n",
        sse_frame(chunk_payload(" jaźń", finish_reason="stop")),
        b"data: [DONE]\n\n",
    ]
)


def _decode(parts: list[bytes]) -> list[ChatChunk]:
    decoder = SSEDecoder()
    chunks: list[ChatChunk] = []
    for part in parts:
        chunks.extend(decoder.feed(part))
    chunks.extend(decoder.flush())
    return chunks


def _random_splits(data: bytes, rng: random.Random, pieces: int) -> list[bytes]:
    cuts = sorted(rng.sample(range(1, len(data)), pieces - 1))
    bounds = [0, *cuts, len(data)]
    return [data[start:end] for start, end in zip(bounds, bounds[1:])]


def test_single_read_decodes_all_chunks() -> None:
    chunks = _decode([STREAM_BYTES])
    assert "".join(chunk.content for chunk in chunks) == "Zażółć gęślą 🦄 jaźń"
    assert chunks[0].choices[0].delta.role == "assistant"
    assert chunks[-1].finish_reason == "stop"


def test_every_two_way_split_matches_single_read() -> None:
    expected = _decode([STREAM_BYTES])
    for offset in range(1, len(STREAM_BYTES)):
        assert _decode([STREAM_BYTES[:offset], STREAM_BYTES[offset:]]) == expected


def test_byte_at_a_time_and_random_splits_match_single_read() -> None:
    expected = _decode([STREAM_BYTES])
    assert _decode([bytes([value]) for value in STREAM_BYTES]) == expected
    rng = random.Random(7)
    for _ in range(50):
        pieces = rng.randint(2, 12)
        assert _decode(_random_splits(STREAM_BYTES, rng, pieces)) == expected


def test_malformed_line_is_skipped_and_stream_completes(caplog: pytest.LogCaptureFixture) -> None:
    data = b'data: {"bad json"\n' + sse_frame(chunk_payload("ok")) + b"data: [DONE]\n"
    decoder = SSEDecoder()
    with caplog.at_level(logging.WARNING, logger="routerchat"):
        chunks = decoder.feed(data)
    assert [chunk.content for chunk in chunks] == ["ok"]
    assert decoder.done
    assert any("Failed to parse streaming chunk" in record.getMessage() for record in caplog.records)


def test_done_sentinel_stops_decoding() -> None:
    data = sse_frame(chunk_payload("one")) + b"data: [DONE]\n\n" + sse_frame(chunk_payload("two"))
    decoder = SSEDecoder()
    assert [chunk.content for chunk in decoder.feed(data)] == ["one"]
    assert decoder.feed(sse_frame(chunk_payload("three"))) == []
    assert decoder.flush() == []


def test_crlf_lines_and_trailing_line_without_newline() -> None:
    frame = "data: " + json.dumps(chunk_payload("tail"))
    decoder = SSEDecoder()
    assert decoder.feed(frame.encode("utf-8").replace(b"\n", b"\r\n")) == []
    chunks = decoder.flush()
    assert [chunk.content for chunk in chunks] == ["tail"]

    crlf = (sse_frame(chunk_payload("a")) + sse_frame(chunk_payload("b"))).replace(b"\n", b"\r\n")
    assert [chunk.content for chunk in SSEDecoder().feed(crlf)] == ["a", "b"]


def test_mid_stream_error_payload_is_reported() -> None:
    data = sse_frame(chunk_payload("partial")) + sse_frame({"error": {"code": 502, "message": "Provider disconnected"}})
    decoder = SSEDecoder()
    chunks = decoder.feed(data)
    assert [chunk.content for chunk in chunks] == ["partial"]
    assert decoder.done
    assert decoder.error is not None
    assert decoder.error.kind is ErrorKind.SERVER_FAILURE


@pytest.mark.asyncio
async def test_stream_yields_chunks_from_split_network_reads() -> None:
    parts = [STREAM_BYTES[offset : offset + 5] for offset in range(0, len(STREAM_BYTES), 5)]
    tracking = TrackingStream(parts)
    upstream = FakeUpstream(sse_response(parts, stream=tracking))
    async with make_client(upstream) as client:
        chunks = [chunk async for chunk in client.stream(make_options(metadata={"trace": "t1"}))]

    assert "".join(chunk.content for chunk in chunks) == "Zażółć gęślą 🦄 jaźń"
    assert tracking.closed
    request = upstream.requests[0]
    assert request.headers["accept"] == "text/event-stream"
    assert json.loads(request.headers["x-metadata"]) == {"trace": "t1"}
    assert json.loads(request.content)["stream"] is True


@pytest.mark.asyncio
async def test_stream_with_malformed_line_yields_one_chunk() -> None:
    parts = [b'data: {"bad json"\n', sse_frame(chunk_payload("only")), b"data: [DONE]\n\n"]
    upstream = FakeUpstream(sse_response(parts))
    async with make_client(upstream) as client:
        async with client.stream(make_options()) as stream:
            chunks = [chunk async for chunk in stream]
    assert [chunk.content for chunk in chunks] == ["only"]
    assert stream.closed


@pytest.mark.asyncio
@pytest.mark.parametrize(("status", "kind"), [(429, ErrorKind.RATE_LIMITED), (503, ErrorKind.SERVER_FAILURE)])
async def test_stream_errors_are_raised_without_retry(status: int, kind: ErrorKind) -> None:
    upstream = FakeUpstream(json_response(status, {"error": {"message": "unavailable"}}, headers={"retry-after": "1"}))
    async with make_client(upstream) as client:
        with pytest.raises(OpenRouterError) as exc_info:
            async for _chunk in client.stream(make_options()):
                pass
    assert exc_info.value.kind is kind
    assert exc_info.value.message == "unavailable"
    assert upstream.calls == 1


@pytest.mark.asyncio
async def test_stream_validation_happens_before_request() -> None:
    upstream = FakeUpstream(sse_response([b"data: [DONE]\n\n"]))
    async with make_client(upstream) as client:
        stream = client.stream(make_options())
        assert upstream.calls == 0
        await stream.aclose()
    assert upstream.calls == 0


@pytest.mark.asyncio
async def test_abandoning_stream_early_releases_connection() -> None:
    parts = [sse_frame(chunk_payload(f"part-{index}")) for index in range(50)] + [b"data: [DONE]\n\n"]
    tracking = TrackingStream(parts)
    upstream = FakeUpstream(sse_response(parts, stream=tracking))
    async with make_client(upstream) as client:
        async with client.stream(make_options()) as stream:
            async for chunk in stream:
                if chunk.content == "part-2":
                    break
        assert stream.closed
        assert tracking.closed
        assert tracking.reads < len(parts)
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()


@pytest.mark.asyncio
async def test_stream_connection_failure_is_network_failure() -> None:
    upstream = FakeUpstream(connect_error())
    async with make_client(upstream) as client:
        with pytest.raises(OpenRouterError) as exc_info:
            async with client.stream(make_options()):
                pass
    assert exc_info.value.kind is ErrorKind.NETWORK_FAILURE
    assert upstream.calls == 1


@pytest.mark.asyncio
async def test_stream_mid_stream_error_raises_after_delivered_chunks() -> None:
    parts = [sse_frame(chunk_payload("partial")), sse_frame({"error": {"code": 429, "message": "Rate limited"}})]
    tracking = TrackingStream(parts)
    upstream = FakeUpstream(sse_response(parts, stream=tracking))
    received: list[str] = []
    async with make_client(upstream) as client:
        with pytest.raises(OpenRouterError) as exc_info:
            async for chunk in client.stream(make_options()):
                received.append(chunk.content)
    assert received == ["partial"]
    assert exc_info.value.kind is ErrorKind.RATE_LIMITED
    assert tracking.closed


@pytest.mark.asyncio
async def test_cancel_releases_stream_while_waiting_for_data() -> None:
    cancel = asyncio.Event()

    class StallingStream(httpx.AsyncByteStream):
        closed = False

        async def __aiter__(self):
            yield sse_frame(chunk_payload("first"))
            await asyncio.sleep(30)
            yield b"data: [DONE]\n\n"

        async def aclose(self) -> None:
            StallingStream.closed = True

    upstream = FakeUpstream(lambda request: httpx.Response(200, stream=StallingStream()))
    async with make_client(upstream) as client:
        stream = client.stream(make_options(cancel=cancel))
        first = await stream.__anext__()
        assert first.content == "first"
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        with pytest.raises(OpenRouterError) as exc_info:
            await asyncio.wait_for(stream.__anext__(), timeout=5)
    assert exc_info.value.kind is ErrorKind.NETWORK_FAILURE
    assert stream.closed
    assert StallingStream.closed
