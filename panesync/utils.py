"""Small shared helpers."""

from __future__ import annotations

import os
import re
from datetime import UTC, datetime


def expand_env_vars(config: object) -> object:
    """Recursively expand environment variables in config.

    Replaces ${VAR} patterns with environment variable values. Unknown
    variables are left untouched.

    Args:
        config: Configuration object (dict, list, str, or primitive)

    Returns:
        Configuration with all ${VAR} patterns replaced
    """
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}  # type: ignore[misc]
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            env_var = match.group(1)
            return os.getenv(env_var, match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, config)
    return config


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an RFC 3339 / ISO 8601 timestamp into an aware datetime.

    Naive timestamps are taken as UTC. Returns None for anything unparseable.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def preview(raw: str, limit: int) -> str:
    """Shorten a raw payload for log output."""
    return raw if len(raw) <= limit else f"{raw[:limit]}..."
