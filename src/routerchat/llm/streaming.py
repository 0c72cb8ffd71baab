"""Server-Sent-Events decoding for streamed chat completions."""

from __future__ import annotations

import asyncio
import codecs
from collections import deque
import json
import logging
from typing import AsyncIterator

import httpx

from routerchat.llm.cancel import run_cancellable
from routerchat.llm.codec import (
    classify_transport_error,
    error_from_stream_payload,
    is_success,
    parse_chat_chunk,
    raise_for_response,
)
from routerchat.llm.errors import OpenRouterError
from routerchat.llm.types import ChatChunk

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """Incremental decoder turning raw SSE bytes into chat chunks.

    Bytes may arrive split at any boundary, including inside a multi-byte
    UTF-8 sequence; incomplete input stays buffered until the next ``feed``.
    Malformed ``data:`` lines are logged and skipped. After ``data: [DONE]``
    further input is ignored.
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._done = False
        self._error: OpenRouterError | None = None

    @property
    def done(self) -> bool:
        return self._done

    @property
    def error(self) -> OpenRouterError | None:
        return self._error

    def feed(self, data: bytes) -> list[ChatChunk]:
        if self._done:
            return []
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._handle_lines(lines)

    def flush(self) -> list[ChatChunk]:
        if self._done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return self._handle_lines(remainder.split("\n"))

    def _handle_lines(self, lines: list[str]) -> list[ChatChunk]:
        chunks: list[ChatChunk] = []
        for line in lines:
            if self._done:
                break
            chunk = self._handle_line(line.strip())
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def _handle_line(self, line: str) -> ChatChunk | None:
        if not line.startswith(DATA_PREFIX):
            return None
        data = line[len(DATA_PREFIX) :].lstrip()
        if data == DONE_SENTINEL:
            self._done = True
            return None
        try:
            payload = json.loads(data)
            if isinstance(payload, dict) and "error" in payload and not payload.get("choices"):
                self._error = error_from_stream_payload(payload)
                self._done = True
                return None
            return parse_chat_chunk(payload)
        except (ValueError, TypeError, AttributeError) as exc:
            self._logger.warning("Failed to parse streaming chunk line=%r error=%s", line, exc)
            return None


class ChatStream:
    """Pull-based, single-use sequence of chunks for one streaming request.

    The request is sent lazily on first use. Use it as an async context
    manager (or call ``aclose``) so the connection is released when the
    caller stops iterating early.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        *,
        cancel: asyncio.Event | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._client = client
        self._request = request
        self._cancel = cancel
        self._logger = logger or logging.getLogger(__name__)
        self._decoder = SSEDecoder(self._logger)
        self._pending: deque[ChatChunk] = deque()
        self._response: httpx.Response | None = None
        self._byte_iter: AsyncIterator[bytes] | None = None
        self._opened = False
        self._exhausted = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def response(self) -> httpx.Response | None:
        return self._response

    async def open(self) -> None:
        if self._opened:
            return
        if self._closed:
            raise RuntimeError("ChatStream is closed and cannot be reopened.")
        self._opened = True
        try:
            response = await run_cancellable(self._client.send(self._request, stream=True), self._cancel)
        except httpx.RequestError as exc:
            self._closed = True
            raise classify_transport_error(exc) from exc
        except OpenRouterError:
            self._closed = True
            raise
        self._response = response
        if not is_success(response.status_code):
            try:
                await response.aread()
            except httpx.RequestError as exc:
                raise classify_transport_error(exc) from exc
            finally:
                await self.aclose()
            raise_for_response(response)
        self._byte_iter = response.aiter_bytes()
        self._logger.debug("Stream opened status=%d", response.status_code)

    async def aclose(self) -> None:
        if self._closed and self._response is None:
            return
        self._closed = True
        self._pending.clear()
        response, self._response = self._response, None
        if response is not None:
            await response.aclose()

    def __aiter__(self) -> "ChatStream":
        return self

    async def __anext__(self) -> ChatChunk:
        if not self._opened:
            await self.open()
        while True:
            if self._pending:
                return self._pending.popleft()
            if self._decoder.error is not None:
                await self.aclose()
                raise self._decoder.error
            if self._exhausted or self._closed:
                await self.aclose()
                raise StopAsyncIteration
            await self._read_more()

    async def _read_more(self) -> None:
        assert self._byte_iter is not None
        try:
            data = await run_cancellable(self._byte_iter.__anext__(), self._cancel)
        except StopAsyncIteration:
            self._pending.extend(self._decoder.flush())
            self._exhausted = True
            return
        except httpx.RequestError as exc:
            await self.aclose()
            raise classify_transport_error(exc) from exc
        except BaseException:
            await self.aclose()
            raise
        self._pending.extend(self._decoder.feed(data))
        if self._decoder.done:
            self._exhausted = True

    async def __aenter__(self) -> "ChatStream":
        try:
            await self.open()
        except BaseException:
            await self.aclose()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
