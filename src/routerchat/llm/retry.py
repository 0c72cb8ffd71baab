"""Bounded exponential-backoff retry over classified upstream errors."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Awaitable, Callable, TypeVar

from routerchat.llm.cancel import cancellable_sleep
from routerchat.llm.codec import cancelled_error
from routerchat.llm.errors import ErrorKind, OpenRouterError
from routerchat.llm.types import DEFAULT_RETRY_CONFIG, RetryConfig
from routerchat.llm.validation import validate_retry_config

T = TypeVar("T")

SleepFn = Callable[[float, "asyncio.Event | None"], Awaitable[bool]]


@dataclass(frozen=True)
class RetryEvent:
    attempt: int
    retries_left: int
    delay: float
    error: OpenRouterError

    @property
    def retry_after_seconds(self) -> int | None:
        return self.error.retry_after_seconds


class RetryPolicy:
    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: SleepFn | None = None,
        on_retry: Callable[[RetryEvent], None] | None = None,
    ) -> None:
        self._config = validate_retry_config(config or DEFAULT_RETRY_CONFIG)
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep or cancellable_sleep
        self._on_retry = on_retry

    @property
    def config(self) -> RetryConfig:
        return self._config

    def delay_for(self, attempt: int) -> float:
        config = self._config
        delay = config.initial_delay * (config.backoff_multiplier**attempt)
        return min(delay, config.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        cancel: asyncio.Event | None = None,
    ) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except OpenRouterError as exc:
                if not exc.retryable or attempt >= self._config.max_retries:
                    raise
                event = RetryEvent(
                    attempt=attempt + 1,
                    retries_left=self._config.max_retries - attempt,
                    delay=self.delay_for(attempt),
                    error=exc,
                )
                self._record(event)
                if await self._sleep(event.delay, cancel):
                    raise cancelled_error("Request cancelled during retry backoff") from exc
                attempt += 1

    def _record(self, event: RetryEvent) -> None:
        self._logger.warning(
            "Retrying request after error attempt=%d retries_left=%d delay=%.3fs kind=%s error=%s",
            event.attempt,
            event.retries_left,
            event.delay,
            event.error.kind.value,
            event.error.message,
        )
        # The advertised Retry-After is informational; the schedule above is not changed by it.
        if event.error.kind is ErrorKind.RATE_LIMITED and event.retry_after_seconds is not None:
            self._logger.info("Rate limit retry-after seconds=%d", event.retry_after_seconds)
        if self._on_retry is not None:
            self._on_retry(event)
