"""Client-side connection and session state for remote agent conversations."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def _source_tree_version() -> str | None:
    try:
        project = tomllib.loads(_PYPROJECT.read_text(encoding="utf-8")).get("project", {})
    except (OSError, tomllib.TOMLDecodeError):
        return None
    value = project.get("version") if isinstance(project, dict) else None
    return value if isinstance(value, str) else None


def _resolve_version() -> str:
    # A checkout's pyproject wins over stale editable-install metadata.
    local = _source_tree_version()
    if local is not None:
        return local
    try:
        return version("panesync")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _resolve_version()

__all__ = ["__version__"]
