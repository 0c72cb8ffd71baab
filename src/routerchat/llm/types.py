"""Core request/response types for the chat client."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence, Union

MessageRole = Literal["system", "user", "assistant", "tool"]
MESSAGE_ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    name: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls(role=data.get("role"), content=data.get("content"), name=data.get("name"))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            payload["name"] = self.name
        return payload


MessageLike = Union[Message, Mapping[str, Any]]


def coerce_message(message: MessageLike) -> Message:
    if isinstance(message, Message):
        return message
    return Message.from_dict(message)


@dataclass(frozen=True)
class ChatOptions:
    model: str
    messages: Sequence[MessageLike]
    temperature: float | None = None
    max_tokens: int | None = None
    response_format: dict[str, Any] | None = None
    metadata: Mapping[str, Any] | None = None
    cancel: asyncio.Event | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0

    @property
    def total(self) -> int:
        return self.prompt + self.completion

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt": self.prompt,
            "completion": self.completion,
            "total": self.total,
        }


@dataclass(frozen=True)
class ChatChoice:
    message: Message
    finish_reason: str | None = None
    index: int = 0


@dataclass(frozen=True)
class ChatResult:
    id: str
    created: int
    model: str
    usage: TokenUsage
    choices: list[ChatChoice]
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def text(self) -> str:
        return self.choices[0].message.content


@dataclass(frozen=True)
class ChunkDelta:
    role: MessageRole | None = None
    content: str | None = None


@dataclass(frozen=True)
class ChunkChoice:
    delta: ChunkDelta
    index: int = 0
    finish_reason: str | None = None


@dataclass(frozen=True)
class ChatChunk:
    """One incremental fragment of a streamed completion."""

    id: str
    created: int
    model: str
    choices: list[ChunkChoice]
    usage: TokenUsage | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def content(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""

    @property
    def finish_reason(self) -> str | None:
        if not self.choices:
            return None
        return self.choices[0].finish_reason


@dataclass(frozen=True)
class ModelPricing:
    prompt: float
    completion: float


@dataclass(frozen=True)
class ModelMeta:
    id: str
    name: str
    description: str | None = None
    context_length: int | None = None
    pricing: ModelPricing | None = None


@dataclass(frozen=True)
class HistoryTurn:
    role: Literal["user", "assistant"]
    content: str


@dataclass(frozen=True)
class MessageContext:
    user: str
    system: str | None = None
    history: Sequence[HistoryTurn | Mapping[str, Any]] = ()


@dataclass(frozen=True)
class RetryConfig:
    """Backoff schedule; delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "initial_delay": self.initial_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
        }


DEFAULT_RETRY_CONFIG = RetryConfig()
