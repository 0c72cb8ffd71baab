"""Render helpers for the routerchat CLI."""

from __future__ import annotations

from typing import Mapping, Sequence

from rich import box
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from routerchat.llm.errors import ChatValidationError, OpenRouterError
from routerchat.llm.types import ChatResult, ModelMeta
from routerchat.ui.console import get_console, get_error_console


def render_banner(title: str, subtitle: str) -> None:
    console = get_console()
    panel = Panel(
        Group(Text(subtitle, style="subtitle")),
        title=Text(title, style="step"),
        title_align="left",
        box=box.ROUNDED,
        border_style="border",
        padding=(0, 2),
        expand=True,
    )
    console.print(panel)


def render_step_header(step_idx: int, step_total: int, title: str, description: str = "") -> None:
    console = get_console()
    content = [Text(description, style="subtitle")] if description else []
    panel = Panel(
        Group(*content),
        title=Text(f"Case {step_idx}/{step_total} · {title}", style="step"),
        title_align="left",
        box=box.ROUNDED,
        border_style="border",
        padding=(0, 2),
        expand=True,
    )
    console.print(panel)


def render_info(text: str) -> None:
    get_console().print(text, style="info", markup=False)


def render_warning(text: str) -> None:
    get_console().print(text, style="warning", markup=False)


def render_success(text: str) -> None:
    get_console().print(text, style="success", markup=False)


def render_error(text: str) -> None:
    panel = Panel(
        Text(text, style="error"),
        box=box.ROUNDED,
        border_style="error",
        padding=(0, 2),
        expand=True,
    )
    get_error_console().print(panel)


def render_client_error(exc: OpenRouterError | ChatValidationError) -> None:
    if isinstance(exc, ChatValidationError):
        render_error(f"Invalid request: {exc}")
        return
    lines = [f"{exc.kind.value}: {exc.message}"]
    if exc.status_code is not None:
        lines.append(f"status: {exc.status_code}")
    if exc.retry_after_seconds is not None:
        lines.append(f"retry after: {exc.retry_after_seconds}s")
    if exc.validation_details:
        lines.extend(f"- {detail}" for detail in exc.validation_details)
    render_error("\n".join(lines))


def render_summary_table(rows: Mapping[str, str] | Sequence[tuple[str, str]], title: str = "Summary") -> None:
    console = get_console()
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="label", no_wrap=True, justify="right")
    table.add_column(style="value")

    items = rows.items() if hasattr(rows, "items") else rows
    for key, value in items:
        table.add_row(Text(str(key), style="label"), Text(str(value), style="value"))

    panel = Panel(
        table,
        title=Text(title, style="step"),
        title_align="left",
        border_style="border",
        box=box.ROUNDED,
        padding=(0, 2),
        expand=True,
    )
    console.print(panel)


def render_models_table(models: Sequence[ModelMeta]) -> None:
    table = Table(box=box.SIMPLE_HEAD, header_style="label", pad_edge=False, expand=True)
    table.add_column("Model", style="accent", no_wrap=True)
    table.add_column("Name", style="value")
    table.add_column("Context", justify="right")
    table.add_column("Prompt $/Mtok", justify="right")
    table.add_column("Completion $/Mtok", justify="right")
    for model in models:
        table.add_row(
            model.id,
            model.name,
            f"{model.context_length:,}" if model.context_length else "-",
            _per_million(model.pricing.prompt) if model.pricing else "-",
            _per_million(model.pricing.completion) if model.pricing else "-",
        )
    get_console().print(table)


def render_chat_result(result: ChatResult, *, latency_ms: int) -> None:
    console = get_console()
    console.print(Text(result.text, style="assistant"))
    finish_reason = result.choices[0].finish_reason or "-"
    render_summary_table(
        [
            ("model", result.model),
            ("id", result.id),
            ("finish", finish_reason),
            ("tokens", f"{result.usage.prompt} prompt / {result.usage.completion} completion"),
            ("latency", f"{latency_ms} ms"),
        ],
        title="Completion",
    )


def render_stream_text(text: str) -> None:
    get_console().print(text, end="", markup=False, style="assistant")


def _per_million(unit_cost: float) -> str:
    return f"{unit_cost * 1_000_000:.2f}"
