"""Credential access for the authenticate handshake.

Storage belongs to the embedding application; the client only reads the
token to authenticate and clears it when the server rejects it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from loguru import logger


class CredentialStore(Protocol):
    def read(self) -> str | None: ...

    def clear(self) -> None: ...


class MemoryCredentialStore:
    """Credential held in process memory."""

    def __init__(self, token: str | None = None) -> None:
        self.token = token

    def read(self) -> str | None:
        return self.token

    def clear(self) -> None:
        self.token = None


class FileCredentialStore:
    """Token kept in a single file (mode 0600)."""

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    def read(self) -> str | None:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read credential from {}: {}", self.path, e)
            return None
        return token or None

    def write(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.info("Cleared stored credential at {}", self.path)
