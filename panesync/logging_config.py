"""panesync logging configuration.

Every module logs through loguru's shared `logger`; this module owns the sinks.

Sinks:
- stderr, at `PANESYNC_LOG_LEVEL` (default INFO)
- a rotating file, only when `PANESYNC_LOG_FILE` is set
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure panesync logging.

    Args:
        level: Optional override for `PANESYNC_LOG_LEVEL`.
    """
    if level:
        os.environ["PANESYNC_LOG_LEVEL"] = level

    resolved_level = os.environ.get("PANESYNC_LOG_LEVEL", "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=resolved_level, format=LOG_FORMAT)

    log_file = os.environ.get("PANESYNC_LOG_FILE")
    if log_file:
        logger.add(log_file, level=resolved_level, format=LOG_FORMAT, rotation="10 MB", retention=5)
