"""Utility functions for threadbridge."""

import json
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the threadbridge data directory.

    Respects THREADBRIDGE_HOME environment variable; falls back to ~/.threadbridge.
    """
    home = os.environ.get("THREADBRIDGE_HOME", "").strip()
    if home:
        return ensure_dir(Path(home).expanduser())
    return ensure_dir(Path.home() / ".threadbridge")


def resolve_path(raw: str, *, base: Path | None = None) -> Path:
    """Expand a configured path; relative paths live under the data directory."""
    candidate = Path(raw).expanduser()
    if candidate.is_absolute():
        return candidate
    return (base or get_data_path()) / candidate


def today_date() -> str:
    """Get today's date in YYYY-MM-DD format."""
    return datetime.now().strftime("%Y-%m-%d")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """Truncate a string to max length, adding suffix if truncated."""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def safe_filename(name: str) -> str:
    """Convert a string to a safe filename."""
    unsafe = '<>:"/\\|?*'
    for char in unsafe:
        name = name.replace(char, "_")
    return name.strip()


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON through a temp file and rename it over the target."""
    ensure_dir(path.parent)
    tmp_path = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)
