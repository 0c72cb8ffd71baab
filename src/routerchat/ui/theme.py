"""Rich theme for the routerchat CLI."""

from __future__ import annotations

from rich.theme import Theme

THEME = Theme(
    {
        "accent": "bright_blue",
        "border": "bright_black",
        "subtitle": "dim",
        "step": "bold bright_blue",
        "info": "dim",
        "warning": "red3",
        "success": "green3",
        "error": "bold red3",
        "label": "dim",
        "value": "white",
        "assistant": "white",
    }
)
