from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from panesync.constants import (
    DEFAULT_HISTORY_PAGE_SIZE,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_SERVER_URL,
    DEFAULT_WS_PATH,
    OPEN_TIMEOUT_S,
    RECONNECT_INITIAL_DELAY_MS,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY_MS,
    RECONNECTING_INDICATOR_TIMEOUT_S,
)
from panesync.paths import CREDENTIAL_PATH


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    server_url: str = DEFAULT_SERVER_URL
    ws_path: str = DEFAULT_WS_PATH
    history_page_size: int = Field(default=DEFAULT_HISTORY_PAGE_SIZE, ge=1)
    poll_interval_s: float = Field(default=DEFAULT_POLL_INTERVAL_S, gt=0)
    reconnect_initial_delay_ms: int = Field(default=RECONNECT_INITIAL_DELAY_MS, ge=1)
    reconnect_max_delay_ms: int = Field(default=RECONNECT_MAX_DELAY_MS, ge=1)
    reconnect_max_attempts: int = Field(default=RECONNECT_MAX_ATTEMPTS, ge=0)
    reconnecting_indicator_timeout_s: float = Field(default=RECONNECTING_INDICATOR_TIMEOUT_S, gt=0)
    open_timeout_s: float = Field(default=OPEN_TIMEOUT_S, gt=0)
    credential_path: str = str(CREDENTIAL_PATH)
    log_level: Optional[str] = None

    @field_validator("server_url")
    @classmethod
    def validate_server_url(cls, v: str) -> str:
        """Only websocket schemes can carry the session protocol."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid server_url: {v}. Expected a ws:// or wss:// URL")
        return v.rstrip("/")

    @field_validator("ws_path")
    @classmethod
    def validate_ws_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @property
    def websocket_url(self) -> str:
        return f"{self.server_url}{self.ws_path}"
