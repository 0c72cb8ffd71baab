"""Error taxonomy for the chat client.

Upstream failures are a single exception type tagged with an ``ErrorKind``;
callers branch on ``error.kind`` rather than on subclasses::

    try:
        result = await client.complete(options)
    except OpenRouterError as exc:
        match exc.kind:
            case ErrorKind.RATE_LIMITED:
                ...
            case ErrorKind.AUTH_FAILURE:
                ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMITED = "rate_limited"
    SERVER_FAILURE = "server_failure"
    NETWORK_FAILURE = "network_failure"
    SCHEMA_FAILURE = "schema_failure"
    HTTP_FAILURE = "http_failure"


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.SERVER_FAILURE})


@dataclass(eq=False)
class OpenRouterError(RuntimeError):
    kind: ErrorKind
    message: str
    status_code: int | None = None
    raw: Any = None
    retry_after_seconds: int | None = None
    validation_details: list[str] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        parts = [f"kind={self.kind.value}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.retry_after_seconds is not None:
            parts.append(f"retry_after={self.retry_after_seconds}")
        return f"OpenRouterError({', '.join(parts)}): {self.message}"


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str


@dataclass(eq=False)
class ChatValidationError(ValueError):
    """Raised before any network call when options are structurally invalid."""

    issues: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.issues:
            return "Invalid chat options."
        return "; ".join(f"{issue.path}: {issue.message}" for issue in self.issues)
