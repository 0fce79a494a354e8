"""
`.env` loading for local runs.

Settings read a handful of environment variables (`TRIPWEAVER_CONFIG_PATH`,
`TRIPWEAVER_LOG_LEVEL`, `TRIPWEAVER_TIMEZONE`). Developers usually keep them in a `.env`
next to `pyproject.toml`; this module finds that file whichever directory uvicorn, the CLI
or pytest was started from, and resolves a relative config path the same way.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_MARKERS = (".env", ".git", "pyproject.toml")


def find_project_root(start: Path | None = None) -> Path | None:
    """Nearest directory at or above `start` (default: cwd) that carries a root marker."""
    start = (start or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in _ROOT_MARKERS):
            return candidate
    return None


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load the project `.env` once; variables already set in the process win."""
    explicit = os.getenv("TRIPWEAVER_ENV_FILE")
    if explicit:
        env_path = Path(explicit).expanduser().resolve()
    else:
        root = find_project_root() or find_project_root(Path(__file__).parent)
        if root is None:
            return None
        env_path = root / ".env"

    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_config_path(path: str | Path) -> Path:
    """Absolute paths pass through; relative ones are taken from the project root."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return ((find_project_root() or Path.cwd()) / p).resolve()
