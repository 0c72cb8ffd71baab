"""Time-boxed cache for the upstream model catalog."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Awaitable, Callable

from routerchat.llm.types import ModelMeta

MODEL_CACHE_TTL_S = 5 * 60


@dataclass(frozen=True)
class _CacheEntry:
    models: tuple[ModelMeta, ...]
    cached_at: float


class ModelCache:
    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[ModelMeta]]],
        *,
        ttl_s: float = MODEL_CACHE_TTL_S,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._fetch = fetch
        self._ttl_s = ttl_s
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._entry: _CacheEntry | None = None

    def is_fresh(self) -> bool:
        entry = self._entry
        return entry is not None and self._clock() - entry.cached_at < self._ttl_s

    async def get(self) -> list[ModelMeta]:
        entry = self._entry
        now = self._clock()
        if entry is not None and now - entry.cached_at < self._ttl_s:
            self._logger.debug("Returning cached model list count=%d", len(entry.models))
            return list(entry.models)

        self._logger.info("Fetching model list from API")
        try:
            models = await self._fetch()
        except Exception as exc:
            self._logger.error("Failed to fetch model list error=%s", exc)
            raise
        # Single assignment; readers see the old entry or the new one, never a mix.
        self._entry = _CacheEntry(models=tuple(models), cached_at=now)
        return list(models)
