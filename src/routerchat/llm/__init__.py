"""Chat-completion client, wire codec and supporting types."""

from routerchat.llm.cache import ModelCache
from routerchat.llm.client import ChatClient, build_messages
from routerchat.llm.errors import ChatValidationError, ErrorKind, OpenRouterError, ValidationIssue
from routerchat.llm.mock import MockUpstream
from routerchat.llm.retry import RetryEvent, RetryPolicy
from routerchat.llm.streaming import ChatStream, SSEDecoder
from routerchat.llm.types import (
    ChatChoice,
    ChatChunk,
    ChatOptions,
    ChatResult,
    ChunkChoice,
    ChunkDelta,
    HistoryTurn,
    Message,
    MessageContext,
    ModelMeta,
    ModelPricing,
    RetryConfig,
    TokenUsage,
)

__all__ = [
    "ChatChoice",
    "ChatChunk",
    "ChatClient",
    "ChatOptions",
    "ChatResult",
    "ChatStream",
    "ChatValidationError",
    "ChunkChoice",
    "ChunkDelta",
    "ErrorKind",
    "HistoryTurn",
    "Message",
    "MessageContext",
    "MockUpstream",
    "ModelCache",
    "ModelMeta",
    "ModelPricing",
    "OpenRouterError",
    "RetryConfig",
    "RetryEvent",
    "RetryPolicy",
    "SSEDecoder",
    "TokenUsage",
    "ValidationIssue",
    "build_messages",
]
