from __future__ import annotations

from pathlib import Path

PANESYNC_HOME = (Path("~/.panesync")).expanduser()
CONFIG_PATH = PANESYNC_HOME / "panesync.yml"
CREDENTIAL_PATH = PANESYNC_HOME / "token"
