"""Console logging setup with secret redaction."""

from __future__ import annotations

import logging
import logging.config
import re

_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")
_OPENROUTER_KEY_RE = re.compile(r"\bsk-or-[A-Za-z0-9\-_]+")
_SECRET_KV_RE = re.compile(
    r"(?i)\b(authorization|api_key|apikey|token|secret|password)\b\s*[:=]\s*([^\s,;]+)"
)


def redact_text(text: str) -> str:
    text = _BEARER_RE.sub("Bearer [redacted]", text)
    text = _OPENROUTER_KEY_RE.sub("[redacted_key]", text)
    text = _SECRET_KV_RE.sub(r"\1=[redacted]", text)
    return text


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        record.msg = redact_text(message)
        record.args = ()
        return True


def configure_logging(log_level: str = "WARNING") -> None:
    level = log_level.upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact": {"()": "routerchat.logging_config.RedactionFilter"},
            },
            "formatters": {
                "standard": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "filters": ["redact"],
                    "level": level,
                    "stream": "ext://sys.stderr",
                }
            },
            "loggers": {
                "routerchat": {"handlers": ["console"], "level": level, "propagate": False},
                "httpx": {"handlers": ["console"], "level": "WARNING", "propagate": False},
            },
        }
    )
