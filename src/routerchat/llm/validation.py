"""Pre-flight validation for chat options and client settings."""

from __future__ import annotations

import json
import math
from typing import Any, Mapping

from routerchat.llm.errors import ChatValidationError, ValidationIssue
from routerchat.llm.types import MESSAGE_ROLES, ChatOptions, Message, RetryConfig


def validate_chat_options(options: ChatOptions) -> None:
    errors: list[ValidationIssue] = []

    model = options.model
    if not isinstance(model, str) or not model.strip():
        errors.append(ValidationIssue("model", "Model identifier is required."))

    messages = options.messages
    if messages is None or isinstance(messages, (str, bytes)) or len(messages) == 0:
        errors.append(ValidationIssue("messages", "At least one message is required."))
    else:
        for index, message in enumerate(messages):
            errors.extend(_validate_message(index, message))

    temperature = options.temperature
    if temperature is not None:
        if not _is_number(temperature):
            errors.append(ValidationIssue("temperature", "temperature must be a number."))
        elif not 0.0 <= temperature <= 2.0:
            errors.append(ValidationIssue("temperature", "temperature must be between 0 and 2."))

    max_tokens = options.max_tokens
    if max_tokens is not None:
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            errors.append(ValidationIssue("max_tokens", "max_tokens must be an integer."))
        elif max_tokens <= 0:
            errors.append(ValidationIssue("max_tokens", "max_tokens must be positive."))

    metadata = options.metadata
    if metadata is not None:
        if not isinstance(metadata, Mapping):
            errors.append(ValidationIssue("metadata", "metadata must be a mapping."))
        else:
            try:
                json.dumps(dict(metadata))
            except (TypeError, ValueError) as exc:
                errors.append(ValidationIssue("metadata", f"metadata must be JSON-serializable ({exc})."))

    if errors:
        raise ChatValidationError(errors)


def _validate_message(index: int, message: Any) -> list[ValidationIssue]:
    path = f"messages[{index}]"
    if isinstance(message, Message):
        role, content, name = message.role, message.content, message.name
    elif isinstance(message, Mapping):
        role, content, name = message.get("role"), message.get("content"), message.get("name")
    else:
        return [ValidationIssue(path, "Message must be a Message or a mapping.")]

    issues: list[ValidationIssue] = []
    if role not in MESSAGE_ROLES:
        issues.append(ValidationIssue(f"{path}.role", f"Unknown role {role!r}."))
    if not isinstance(content, str):
        issues.append(ValidationIssue(f"{path}.content", "content must be a string."))
    if name is not None and not isinstance(name, str):
        issues.append(ValidationIssue(f"{path}.name", "name must be a string."))
    return issues


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def validate_api_key(api_key: str | None) -> str:
    if not isinstance(api_key, str) or not api_key.strip():
        raise ChatValidationError([ValidationIssue("api_key", "API key cannot be empty.")])
    return api_key.strip()


def validate_retry_config(config: RetryConfig) -> RetryConfig:
    errors: list[ValidationIssue] = []
    if isinstance(config.max_retries, bool) or not isinstance(config.max_retries, int) or config.max_retries < 0:
        errors.append(ValidationIssue("retry.max_retries", "max_retries must be an integer >= 0."))
    if not _is_number(config.initial_delay) or config.initial_delay < 0:
        errors.append(ValidationIssue("retry.initial_delay", "initial_delay must be >= 0."))
    if not _is_number(config.max_delay) or config.max_delay < 0:
        errors.append(ValidationIssue("retry.max_delay", "max_delay must be >= 0."))
    elif _is_number(config.initial_delay) and config.max_delay < config.initial_delay:
        errors.append(ValidationIssue("retry.max_delay", "max_delay must be >= initial_delay."))
    if not _is_number(config.backoff_multiplier) or config.backoff_multiplier <= 1:
        errors.append(ValidationIssue("retry.backoff_multiplier", "backoff_multiplier must be > 1."))
    if errors:
        raise ChatValidationError(errors)
    return config
