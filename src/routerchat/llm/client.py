"""Resilient chat-completion client for OpenRouter-compatible APIs."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Any, Callable

import httpx

from routerchat.llm.cache import ModelCache
from routerchat.llm.cancel import run_cancellable
from routerchat.llm.codec import (
    app_identity_headers,
    bearer_auth,
    build_headers,
    build_request_body,
    classify_transport_error,
    decode_chat_result,
    decode_model_list,
    extract_request_id,
)
from routerchat.llm.errors import OpenRouterError
from routerchat.llm.retry import RetryEvent, RetryPolicy, SleepFn
from routerchat.llm.streaming import ChatStream
from routerchat.llm.types import (
    ChatOptions,
    ChatResult,
    HistoryTurn,
    Message,
    MessageContext,
    ModelMeta,
    RetryConfig,
)
from routerchat.llm.validation import validate_api_key, validate_chat_options

if TYPE_CHECKING:
    from routerchat.config import ClientSettings

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class ChatClient:
    """Typed, retrying client for chat completions, streams and the model catalog.

    ``complete`` retries rate limits and 5xx responses with exponential backoff;
    ``stream`` is a single attempt; ``list_models`` is served from a 5-minute cache.
    Pass ``transport`` (for example ``httpx.MockTransport``) to substitute the
    network in tests.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 60.0,
        retry_config: RetryConfig | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_retry: Callable[[RetryEvent], None] | None = None,
        sleep: SleepFn | None = None,
        clock: Callable[[], float] = time.monotonic,
        app_referer: str | None = None,
        app_title: str | None = None,
    ) -> None:
        self._auth = bearer_auth(validate_api_key(api_key or os.environ.get("OPENROUTER_API_KEY")))
        self._base_url = normalize_base_url(base_url or os.environ.get("OPENROUTER_BASE_URL"))
        self._logger = logger or logging.getLogger(__name__)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s, transport=transport)
        self._retry = RetryPolicy(retry_config, logger=self._logger, sleep=sleep, on_retry=on_retry)
        self._models = ModelCache(self._fetch_models, clock=clock, logger=self._logger)
        self._app_headers = app_identity_headers(app_referer, app_title)

        self._logger.debug(
            "ChatClient initialized base_url=%s retry=%s",
            self._base_url,
            self._retry.config.to_dict(),
        )

    @classmethod
    def from_settings(cls, settings: "ClientSettings", **kwargs: Any) -> "ChatClient":
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout_s=settings.timeout_s,
            retry_config=settings.retry,
            app_referer=settings.app_referer,
            app_title=settings.app_title,
            **kwargs,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "ChatClient":
        from routerchat.config import ClientSettings

        return cls.from_settings(ClientSettings.from_env(), **kwargs)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def complete(self, options: ChatOptions) -> ChatResult:
        validate_chat_options(options)
        url = self._url("/chat/completions")
        headers = build_headers(self._auth, options, app_headers=self._app_headers)
        body = build_request_body(options)

        async def attempt() -> ChatResult:
            try:
                response = await run_cancellable(
                    self._client.post(url, json=body, headers=headers),
                    options.cancel,
                )
            except httpx.RequestError as exc:
                raise classify_transport_error(exc) from exc
            self._logger.debug(
                "Chat response status=%d request_id=%s",
                response.status_code,
                extract_request_id(response.headers),
            )
            return decode_chat_result(response)

        start = time.monotonic()
        self._logger.info("Starting chat request model=%s messages=%d", options.model, len(options.messages))
        try:
            result = await self._retry.run(attempt, cancel=options.cancel)
        except OpenRouterError as exc:
            self._logger.error(
                "Chat request failed model=%s latency_ms=%d kind=%s error=%s",
                options.model,
                _elapsed_ms(start),
                exc.kind.value,
                exc.message,
            )
            raise
        self._logger.info(
            "Chat request completed model=%s latency_ms=%d usage=%s",
            result.model or options.model,
            _elapsed_ms(start),
            result.usage.to_dict(),
        )
        return result

    def stream(self, options: ChatOptions) -> ChatStream:
        """Validate ``options`` and return an unopened stream of chunks.

        The request is sent on first iteration (or on ``async with``) and is
        never retried; a non-2xx status raises the classified error then.
        """
        validate_chat_options(options)
        request = self._client.build_request(
            "POST",
            self._url("/chat/completions"),
            json=build_request_body(options, stream=True),
            headers=build_headers(self._auth, options, stream=True, app_headers=self._app_headers),
        )
        self._logger.info(
            "Starting streaming chat request model=%s messages=%d",
            options.model,
            len(options.messages),
        )
        return ChatStream(self._client, request, cancel=options.cancel, logger=self._logger)

    async def list_models(self) -> list[ModelMeta]:
        return await self._models.get()

    def build_messages(self, context: MessageContext) -> list[Message]:
        return build_messages(context)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ChatClient(base_url={self._base_url!r})"

    def __reduce_ex__(self, protocol: Any) -> Any:
        raise TypeError("ChatClient holds credentials and cannot be serialized.")

    async def _fetch_models(self) -> list[ModelMeta]:
        headers = build_headers(self._auth, app_headers=self._app_headers)
        try:
            response = await self._client.get(self._url("/models"), headers=headers)
        except httpx.RequestError as exc:
            raise classify_transport_error(exc) from exc
        return decode_model_list(response)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"


def normalize_base_url(base_url: str | None) -> str:
    return (base_url or DEFAULT_BASE_URL).strip().rstrip("/")


def build_messages(context: MessageContext) -> list[Message]:
    messages: list[Message] = []
    if context.system:
        messages.append(Message(role="system", content=context.system))
    for turn in context.history or ():
        if isinstance(turn, HistoryTurn):
            messages.append(Message(role=turn.role, content=turn.content))
        else:
            messages.append(Message(role=turn["role"], content=turn["content"]))
    messages.append(Message(role="user", content=context.user))
    return messages


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
