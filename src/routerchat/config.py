"""Client settings and their resolution from the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Mapping

from routerchat.llm.client import DEFAULT_BASE_URL, normalize_base_url
from routerchat.llm.types import DEFAULT_RETRY_CONFIG, RetryConfig

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class ClientSettings:
    api_key: str | None = field(default=None, repr=False)
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = DEFAULT_TIMEOUT_S
    retry: RetryConfig = DEFAULT_RETRY_CONFIG
    default_model: str = DEFAULT_MODEL
    log_level: str = DEFAULT_LOG_LEVEL
    app_referer: str | None = None
    app_title: str | None = None

    @property
    def api_key_present(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClientSettings":
        env = os.environ if environ is None else environ
        retry = RetryConfig(
            max_retries=_int_env(env, "ROUTERCHAT_MAX_RETRIES", DEFAULT_RETRY_CONFIG.max_retries),
            initial_delay=_float_env(env, "ROUTERCHAT_RETRY_INITIAL_DELAY_S", DEFAULT_RETRY_CONFIG.initial_delay),
            max_delay=_float_env(env, "ROUTERCHAT_RETRY_MAX_DELAY_S", DEFAULT_RETRY_CONFIG.max_delay),
            backoff_multiplier=DEFAULT_RETRY_CONFIG.backoff_multiplier,
        )
        return cls(
            api_key=env.get("OPENROUTER_API_KEY") or None,
            base_url=normalize_base_url(env.get("OPENROUTER_BASE_URL")),
            timeout_s=_float_env(env, "ROUTERCHAT_TIMEOUT_S", DEFAULT_TIMEOUT_S),
            retry=retry,
            default_model=env.get("ROUTERCHAT_DEFAULT_MODEL") or DEFAULT_MODEL,
            log_level=(env.get("ROUTERCHAT_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
            app_referer=env.get("ROUTERCHAT_APP_REFERER") or None,
            app_title=env.get("ROUTERCHAT_APP_TITLE") or None,
        )

    def to_dict(self) -> dict:
        # Never includes the API key itself.
        return {
            "api_key_present": self.api_key_present,
            "base_url": self.base_url,
            "timeout_s": self.timeout_s,
            "retry": self.retry.to_dict(),
            "default_model": self.default_model,
            "log_level": self.log_level,
            "app_referer": self.app_referer,
            "app_title": self.app_title,
        }


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}.") from exc


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number, got {raw!r}.") from exc
