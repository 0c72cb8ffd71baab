"""Minimal .env loader for the routerchat CLI."""

from __future__ import annotations

import os
from pathlib import Path


def load_dotenv(path: str | Path = ".env", *, override: bool = False) -> list[str]:
    """Populate ``os.environ`` from a dotenv file and return the keys that were set.

    Existing variables win unless ``override`` is set. Lines may carry an
    ``export`` prefix; matching single or double quotes around values are removed.
    """
    env_path = Path(path)
    try:
        text = env_path.read_text(encoding="utf-8")
    except (FileNotFoundError, IsADirectoryError):
        return []
    except OSError:
        return []

    loaded: list[str] = []
    for line in text.splitlines():
        key, value = _parse_line(line)
        if key is None or value is None:
            continue
        if key in os.environ and not override:
            continue
        os.environ[key] = value
        loaded.append(key)
    return loaded


def _parse_line(line: str) -> tuple[str | None, str | None]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None, None
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].lstrip()
    key, value = (part.strip() for part in stripped.split("=", 1))
    if not key:
        return None, None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        value = value[1:-1]
    if value == "":
        return None, None
    return key, value
