"""Typed models for the conversation, agent and session directory."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TypeAlias

from panesync.utils import utc_now

JsonValue: TypeAlias = str | int | float | bool | None | list["JsonValue"] | dict[str, "JsonValue"]
JsonObject: TypeAlias = dict[str, JsonValue]


class Role(str, Enum):
    """Author of a conversation entry."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class AgentStatus(str, Enum):
    """Reported status of a remote agent."""

    ONLINE = "online"
    OFFLINE = "offline"
    BUSY = "busy"


class SessionStatus(str, Enum):
    """Status carried by `session_status` events."""

    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ENDED = "ended"


# --- Entry kinds (closed union, exactly one per entry) ---


@dataclass(frozen=True)
class Text:
    pass


@dataclass(frozen=True)
class Code:
    language: str | None = None


@dataclass(frozen=True)
class ToolInvocation:
    tool: str
    input: JsonValue = None


@dataclass(frozen=True)
class ToolOutcome:
    tool: str
    success: bool


@dataclass(frozen=True)
class ApprovalRequest:
    request_id: str
    tool: str
    description: str


@dataclass(frozen=True)
class SystemNotice:
    pass


@dataclass(frozen=True)
class ErrorNotice:
    pass


EntryKind = Text | Code | ToolInvocation | ToolOutcome | ApprovalRequest | SystemNotice | ErrorNotice


def new_entry_id() -> str:
    """Locally generated id for optimistic entries."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ConversationEntry:
    """One message unit of a conversation.

    `id` is server-assigned for persisted history and locally generated for
    entries created from live pushes or optimistic sends.
    """

    id: str
    role: Role
    content: str
    created_at: datetime = field(default_factory=utc_now)
    kind: EntryKind = field(default_factory=Text)
    pane: str | None = None


@dataclass(frozen=True)
class RemoteAgent:
    """A connected CLI client as reported by the directory listing."""

    id: str
    status: AgentStatus
    name: str | None = None
    last_seen: datetime | None = None
    active_session_id: str | None = None


@dataclass(frozen=True)
class SessionRecord:
    """A persisted session as reported by the session listing."""

    id: str
    status: str
    agent_id: str | None = None
    working_dir: str | None = None
    hostname: str | None = None
    created_at: datetime | None = None
    is_shared: bool = False
    owner_email: str | None = None


@dataclass(frozen=True)
class ProjectInfo:
    """Session record merged with live agent state for directory display."""

    session_id: str
    name: str
    working_dir: str
    hostname: str | None
    is_live: bool
    created_at: datetime | None
    is_shared: bool = False
    owner_email: str | None = None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a user-initiated operation. Failures carry an `error` text."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> CommandResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> CommandResult:
        return cls(ok=False, error=error)


NOT_CONNECTED = "not connected"
SESSION_NOT_ACTIVE = "session not active"
NO_SESSION = "no session"
ALREADY_LOADING = "already loading"
NO_MORE_HISTORY = "no more history"
NO_HISTORY_LOADED = "no history loaded"
