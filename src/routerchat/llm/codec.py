"""Request construction and response classification for the OpenRouter wire format."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Mapping

import httpx

from routerchat.llm.errors import ErrorKind, OpenRouterError
from routerchat.llm.types import (
    ChatChoice,
    ChatChunk,
    ChatOptions,
    ChatResult,
    ChunkChoice,
    ChunkDelta,
    Message,
    ModelMeta,
    ModelPricing,
    TokenUsage,
    coerce_message,
)

HeaderBuilder = Callable[[], dict[str, str]]

SSE_CONTENT_TYPE = "text/event-stream"


def bearer_auth(api_key: str) -> HeaderBuilder:
    # The key is only reachable through this closure.
    def auth_headers() -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    return auth_headers


def app_identity_headers(referer: str | None = None, title: str | None = None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if referer:
        headers["HTTP-Referer"] = referer
    if title:
        headers["X-Title"] = title
    return headers


def build_headers(
    auth: HeaderBuilder,
    options: ChatOptions | None = None,
    *,
    stream: bool = False,
    app_headers: Mapping[str, str] | None = None,
) -> dict[str, str]:
    headers = auth()
    headers["Content-Type"] = "application/json"
    if app_headers:
        for key, value in app_headers.items():
            if key.lower() in {"authorization", "content-type"}:
                continue
            headers[key] = value
    if options is not None and options.metadata:
        headers["X-Metadata"] = json.dumps(dict(options.metadata), separators=(",", ":"), ensure_ascii=True)
    if stream:
        headers["Accept"] = SSE_CONTENT_TYPE
    return headers


def build_request_body(options: ChatOptions, *, stream: bool = False) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": options.model,
        "messages": [coerce_message(message).to_dict() for message in options.messages],
    }

    def add_optional(key: str, value: Any) -> None:
        if value is not None:
            body[key] = value

    add_optional("temperature", options.temperature)
    add_optional("max_tokens", options.max_tokens)
    add_optional("response_format", options.response_format)
    if stream:
        body["stream"] = True
    return body


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {key: value for key, value in headers.items() if key.lower() != "authorization"}


def extract_request_id(headers: httpx.Headers) -> str | None:
    return headers.get("x-request-id") or headers.get("openrouter-request-id")


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


# --- classification -------------------------------------------------------


def parse_retry_after(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def decode_error_body(content: bytes | str) -> Any:
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    try:
        return json.loads(text)
    except ValueError:
        return text


def extract_error_message(status_code: int, body: Any) -> str:
    if isinstance(body, dict) and "error" in body:
        error_field = body["error"]
        if isinstance(error_field, str):
            return error_field
        if isinstance(error_field, dict):
            message = error_field.get("message") or error_field.get("code")
            if message:
                return str(message)
            return json.dumps(error_field, ensure_ascii=True)
        if error_field is not None:
            return str(error_field)
    if isinstance(body, str) and body.strip():
        return body.strip()
    return f"HTTP {status_code} error"


def error_from_status(
    status_code: int,
    body: Any,
    *,
    retry_after: str | None = None,
) -> OpenRouterError:
    message = extract_error_message(status_code, body)
    if status_code == 400:
        return OpenRouterError(ErrorKind.BAD_REQUEST, message, status_code=status_code, raw=body)
    if status_code in (401, 403):
        return OpenRouterError(ErrorKind.AUTH_FAILURE, message, status_code=status_code, raw=body)
    if status_code == 429:
        return OpenRouterError(
            ErrorKind.RATE_LIMITED,
            message,
            status_code=status_code,
            raw=body,
            retry_after_seconds=parse_retry_after(retry_after),
        )
    if 500 <= status_code <= 599:
        return OpenRouterError(ErrorKind.SERVER_FAILURE, message, status_code=status_code, raw=body)
    return OpenRouterError(ErrorKind.HTTP_FAILURE, message, status_code=status_code, raw=body)


def raise_for_response(response: httpx.Response) -> None:
    """Raise the classified error for a non-2xx response whose body has been read."""
    if is_success(response.status_code):
        return
    body = decode_error_body(response.content)
    raise error_from_status(
        response.status_code,
        body,
        retry_after=response.headers.get("retry-after"),
    )


def classify_transport_error(exc: BaseException) -> OpenRouterError:
    if isinstance(exc, httpx.TimeoutException):
        message = f"Upstream timeout: {exc}" if str(exc) else "Upstream timeout"
    elif isinstance(exc, asyncio.CancelledError):
        message = "Request cancelled"
    else:
        message = str(exc) or "Network request failed"
    return OpenRouterError(ErrorKind.NETWORK_FAILURE, message, raw=None)


def cancelled_error(message: str = "Request cancelled") -> OpenRouterError:
    return OpenRouterError(ErrorKind.NETWORK_FAILURE, message)


def error_from_stream_payload(payload: Mapping[str, Any]) -> OpenRouterError:
    error_field = payload.get("error")
    code = error_field.get("code") if isinstance(error_field, dict) else None
    if isinstance(code, int) and not isinstance(code, bool) and not is_success(code):
        return error_from_status(code, dict(payload))
    return OpenRouterError(
        ErrorKind.SERVER_FAILURE,
        extract_error_message(502, dict(payload)),
        raw=dict(payload),
    )


# --- payload parsing ------------------------------------------------------


def decode_chat_result(response: httpx.Response) -> ChatResult:
    raise_for_response(response)
    try:
        payload = response.json()
    except ValueError as exc:
        raise OpenRouterError(
            ErrorKind.SCHEMA_FAILURE,
            "Response body is not valid JSON.",
            status_code=response.status_code,
            raw=response.text,
            validation_details=[str(exc)],
        ) from exc
    return parse_chat_result(payload, status_code=response.status_code)


def parse_chat_result(payload: Any, *, status_code: int | None = None) -> ChatResult:
    problems: list[str] = []
    if not isinstance(payload, dict):
        problems.append("payload must be an object")
        raise _schema_failure(problems, payload, status_code)

    raw_choices = payload.get("choices")
    choices: list[ChatChoice] = []
    if not isinstance(raw_choices, list) or not raw_choices:
        problems.append("choices must be a non-empty list")
    else:
        for index, raw_choice in enumerate(raw_choices):
            message = raw_choice.get("message") if isinstance(raw_choice, dict) else None
            if not isinstance(message, dict):
                problems.append(f"choices[{index}].message must be an object")
                continue
            content = message.get("content")
            if content is not None and not isinstance(content, str):
                problems.append(f"choices[{index}].message.content must be a string")
                continue
            choices.append(
                ChatChoice(
                    message=Message(
                        role=message.get("role") or "assistant",
                        content=content or "",
                        name=message.get("name"),
                    ),
                    finish_reason=raw_choice.get("finish_reason"),
                    index=_as_int(raw_choice.get("index"), index),
                )
            )
    if problems:
        raise _schema_failure(problems, payload, status_code)

    return ChatResult(
        id=str(payload.get("id") or ""),
        created=_as_int(payload.get("created"), 0),
        model=str(payload.get("model") or ""),
        usage=parse_usage(payload.get("usage")) or TokenUsage(),
        choices=choices,
        raw=payload,
    )


def parse_chat_chunk(payload: Any) -> ChatChunk:
    if not isinstance(payload, dict):
        raise ValueError(f"Chunk must be a JSON object, got {type(payload).__name__}.")
    choices: list[ChunkChoice] = []
    for index, raw_choice in enumerate(payload.get("choices") or []):
        if not isinstance(raw_choice, dict):
            continue
        delta = raw_choice.get("delta") or {}
        choices.append(
            ChunkChoice(
                delta=ChunkDelta(role=delta.get("role"), content=delta.get("content")),
                index=_as_int(raw_choice.get("index"), index),
                finish_reason=raw_choice.get("finish_reason"),
            )
        )
    return ChatChunk(
        id=str(payload.get("id") or ""),
        created=_as_int(payload.get("created"), 0),
        model=str(payload.get("model") or ""),
        choices=choices,
        usage=parse_usage(payload.get("usage")),
        raw=payload,
    )


def parse_usage(raw: Any) -> TokenUsage | None:
    if not isinstance(raw, dict):
        return None
    prompt = raw.get("prompt_tokens", raw.get("prompt", 0))
    completion = raw.get("completion_tokens", raw.get("completion", 0))
    return TokenUsage(prompt=_as_int(prompt, 0), completion=_as_int(completion, 0))


def decode_model_list(response: httpx.Response) -> list[ModelMeta]:
    raise_for_response(response)
    try:
        payload = response.json()
    except ValueError as exc:
        raise OpenRouterError(
            ErrorKind.SCHEMA_FAILURE,
            "Model list is not valid JSON.",
            status_code=response.status_code,
            raw=response.text,
            validation_details=[str(exc)],
        ) from exc
    return parse_model_list(payload, status_code=response.status_code)


def parse_model_list(payload: Any, *, status_code: int | None = None) -> list[ModelMeta]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise _schema_failure(["data must be a list"], payload, status_code)
    models: list[ModelMeta] = []
    problems: list[str] = []
    for index, raw in enumerate(data):
        model_id = raw.get("id") if isinstance(raw, dict) else None
        if not isinstance(model_id, str) or not model_id.strip():
            problems.append(f"data[{index}].id is required")
            continue
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            name = model_id
        description = raw.get("description")
        context_length = raw.get("context_length")
        models.append(
            ModelMeta(
                id=model_id,
                name=name,
                description=description if isinstance(description, str) else None,
                context_length=context_length if isinstance(context_length, int) else None,
                pricing=_parse_pricing(raw.get("pricing")),
            )
        )
    if problems:
        raise _schema_failure(problems, payload, status_code)
    return models


def _parse_pricing(raw: Any) -> ModelPricing | None:
    if not isinstance(raw, dict):
        return None
    try:
        return ModelPricing(
            prompt=float(raw.get("prompt", "0")),
            completion=float(raw.get("completion", "0")),
        )
    except (TypeError, ValueError):
        return None


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return default


def _schema_failure(problems: list[str], payload: Any, status_code: int | None) -> OpenRouterError:
    return OpenRouterError(
        ErrorKind.SCHEMA_FAILURE,
        f"Unexpected response shape: {'; '.join(problems)}",
        status_code=status_code,
        raw=payload,
        validation_details=problems,
    )
