"""CLI entrypoint for routerchat diagnostics."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Optional

import typer

from routerchat.config import ClientSettings
from routerchat.env import load_dotenv
from routerchat.llm.client import ChatClient, build_messages
from routerchat.llm.codec import (
    app_identity_headers,
    bearer_auth,
    build_headers,
    build_request_body,
    sanitize_headers,
)
from routerchat.llm.errors import ChatValidationError, OpenRouterError
from routerchat.llm.mock import MockUpstream
from routerchat.llm.types import ChatOptions, MessageContext
from routerchat.logging_config import configure_logging
from routerchat.ui.render import (
    render_banner,
    render_chat_result,
    render_client_error,
    render_error,
    render_info,
    render_models_table,
    render_step_header,
    render_stream_text,
    render_success,
    render_summary_table,
    render_warning,
)

app = typer.Typer(add_completion=False, help="Resilient OpenRouter chat client.")
llm_app = typer.Typer(add_completion=False, help="LLM utilities and diagnostics.")
app.add_typer(llm_app, name="llm")


@app.callback(invoke_without_command=True)
def root(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override ROUTERCHAT_LOG_LEVEL."),
) -> None:
    """routerchat command line."""
    load_dotenv()
    settings = ClientSettings.from_env()
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


@app.command("settings")
def show_settings(ctx: typer.Context) -> None:
    """Show the resolved client settings (the API key is never printed)."""
    settings: ClientSettings = ctx.obj
    rows = [(key, json.dumps(value) if isinstance(value, dict) else str(value)) for key, value in settings.to_dict().items()]
    render_summary_table(rows, title="Settings")
    if not settings.api_key_present:
        render_warning("OPENROUTER_API_KEY is not set; only --mock commands will reach an upstream.")


@llm_app.command("dry-run")
def llm_dry_run(ctx: typer.Context) -> None:
    """Build and display chat request bodies and headers without network access."""
    settings: ClientSettings = ctx.obj
    render_banner("routerchat", "LLM dry-run request preview")
    auth = bearer_auth("sk-or-dry-run")
    messages = build_messages(MessageContext(system="You are concise.", user="Say hello in one sentence."))

    cases = [
        ("Single-shot", ChatOptions(model=settings.default_model, messages=messages, temperature=0.7), False),
        (
            "Single-shot with metadata",
            ChatOptions(
                model=settings.default_model,
                messages=messages,
                max_tokens=256,
                metadata={"mode": "dry_run"},
            ),
            False,
        ),
        ("Streaming", ChatOptions(model=settings.default_model, messages=messages), True),
    ]
    for index, (title, options, stream) in enumerate(cases, start=1):
        render_step_header(index, len(cases), title, "Request body and headers (authorization omitted).")
        preview = {
            "url": f"{settings.base_url}/chat/completions",
            "headers": sanitize_headers(
                build_headers(
                    auth,
                    options,
                    stream=stream,
                    app_headers=app_identity_headers(settings.app_referer, settings.app_title),
                )
            ),
            "body": build_request_body(options, stream=stream),
        }
        print(json.dumps(preview, indent=2, sort_keys=True, ensure_ascii=True))


@llm_app.command("models")
def llm_models(
    ctx: typer.Context,
    mock: bool = typer.Option(False, "--mock", help="Use the offline mock upstream."),
) -> None:
    """List available models (cached for five minutes per client)."""
    settings: ClientSettings = ctx.obj

    async def run() -> None:
        async with _build_client(settings, mock=mock) as client:
            models = await client.list_models()
        render_models_table(models)
        render_info(f"{len(models)} models.")

    _run_guarded(run())


@llm_app.command("chat")
def llm_chat(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="User message."),
    system: Optional[str] = typer.Option(None, "--system", help="Optional system message."),
    model: Optional[str] = typer.Option(None, "--model", help="Model identifier."),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Sampling temperature (0-2)."),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Maximum output tokens."),
    stream: bool = typer.Option(False, "--stream", help="Stream the completion as it is generated."),
    mock: bool = typer.Option(False, "--mock", help="Use the offline mock upstream."),
) -> None:
    """Send one chat completion and print the reply."""
    settings: ClientSettings = ctx.obj
    options = ChatOptions(
        model=model or settings.default_model,
        messages=build_messages(MessageContext(system=system, user=prompt)),
        temperature=temperature,
        max_tokens=max_tokens,
    )

    async def run() -> None:
        async with _build_client(settings, mock=mock) as client:
            start = time.monotonic()
            if not stream:
                result = await client.complete(options)
                render_chat_result(result, latency_ms=int((time.monotonic() - start) * 1000))
                return
            chunk_count = 0
            async with client.stream(options) as chunks:
                async for chunk in chunks:
                    chunk_count += 1
                    render_stream_text(chunk.content)
            print()
            render_success(f"Stream complete: {chunk_count} chunks in {int((time.monotonic() - start) * 1000)} ms.")

    _run_guarded(run())


def _build_client(settings: ClientSettings, *, mock: bool) -> ChatClient:
    if mock:
        return ChatClient(
            api_key=settings.api_key or "mock-key",
            base_url=settings.base_url,
            retry_config=settings.retry,
            transport=MockUpstream().transport(),
        )
    if not settings.api_key_present:
        render_error("OPENROUTER_API_KEY is not set. Add it to .env or pass --mock.")
        raise typer.Exit(code=1)
    return ChatClient.from_settings(settings)


def _run_guarded(coro) -> None:
    try:
        asyncio.run(coro)
    except (OpenRouterError, ChatValidationError) as exc:
        render_client_error(exc)
        raise typer.Exit(code=1) from exc


def main() -> None:
    app()


if __name__ == "__main__":
    main()
