"""Wire codec for the web session protocol.

Inbound JSON objects are decoded into typed domain events; outbound commands
are encoded as JSON objects tagged with `type`. Both directions are pure:
decoding never touches client state.

Decoding rules:
- non-JSON, non-object or untagged payloads raise DecodeError
- unrecognized `type` values decode to UnknownEvent (forward compatibility)
- a known event whose envelope fails validation raises DecodeError
- a malformed item inside a list (agent, session or history row) is dropped
  on its own; the rest of the event survives
- nested tool payloads that cannot be recovered degrade the entry to Text
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, TypeAlias

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from panesync.client.models import (
    AgentStatus,
    ApprovalRequest,
    Code,
    ConversationEntry,
    EntryKind,
    ErrorNotice,
    JsonObject,
    RemoteAgent,
    Role,
    SessionRecord,
    SessionStatus,
    SystemNotice,
    Text,
    ToolInvocation,
    ToolOutcome,
    new_entry_id,
)
from panesync.constants import LOG_PAYLOAD_PREVIEW_CHARS
from panesync.utils import parse_timestamp, preview, utc_now

__all__ = [
    "DecodeError",
    "DomainEvent",
    "decode",
    "encode",
    "entries_from_stream_message",
    "kind_from_output_type",
    "kind_from_row",
]


class DecodeError(ValueError):
    """Inbound payload could not be decoded."""

    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.raw = raw


# --- Wire payload shapes (validated with pydantic) ---


@dataclass(frozen=True)
class _WireCliClient:
    id: str
    status: str = AgentStatus.OFFLINE.value
    name: str | None = None
    last_seen: str | None = None
    active_session: str | None = None


@dataclass(frozen=True)
class _WireSession:
    id: str
    status: str = ""
    cli_client_id: str | None = None
    working_dir: str | None = None
    hostname: str | None = None
    created_at: str | None = None
    is_shared: bool = False
    owner_email: str | None = None


@dataclass(frozen=True)
class _WireMessageRow:
    id: str
    role: str
    content: str
    message_type: str = "text"
    created_at: str | None = None
    pane_type: str | None = None


@dataclass(frozen=True)
class _WireAuthenticated:
    user_id: str


@dataclass(frozen=True)
class _WireAuthenticationFailed:
    reason: str = ""


@dataclass(frozen=True)
class _WireList:
    items: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class _WireSessionStarted:
    session_id: str
    pane_type: str | None = None


@dataclass(frozen=True)
class _WireSessionStatus:
    status: str


@dataclass(frozen=True)
class _WireOutput:
    content: str
    output_type: Any = None


@dataclass(frozen=True)
class _WireStreamMessage:
    session_id: str
    message: dict[str, Any]
    pane_type: str | None = None


@dataclass(frozen=True)
class _WireUserInput:
    session_id: str
    text: str
    pane_type: str | None = None


@dataclass(frozen=True)
class _WireSessionMessages:
    session_id: str
    messages: list[Any] = field(default_factory=list)
    has_more: bool = False


@dataclass(frozen=True)
class _WireDeadloopStatus:
    is_paused: bool


@dataclass(frozen=True)
class _WireError:
    message: str


# --- Domain events ---


@dataclass(frozen=True)
class AuthenticatedEvent:
    user_id: str


@dataclass(frozen=True)
class AuthenticationFailedEvent:
    reason: str


@dataclass(frozen=True)
class AgentsListedEvent:
    agents: list[RemoteAgent]


@dataclass(frozen=True)
class SessionsListedEvent:
    sessions: list[SessionRecord]


@dataclass(frozen=True)
class SessionStartedEvent:
    session_id: str


@dataclass(frozen=True)
class SessionStatusEvent:
    status: SessionStatus | None
    raw_status: str


@dataclass(frozen=True)
class OutputEvent:
    entry: ConversationEntry


@dataclass(frozen=True)
class StreamMessageEvent:
    session_id: str
    entries: list[ConversationEntry]
    pane: str | None


@dataclass(frozen=True)
class UserInputEvent:
    session_id: str
    entry: ConversationEntry
    pane: str | None


@dataclass(frozen=True)
class HistoryRow:
    """One persisted entry together with its wire pane tag."""

    entry: ConversationEntry
    pane: str | None


@dataclass(frozen=True)
class SessionMessagesEvent:
    session_id: str
    rows: list[HistoryRow]
    has_more: bool


@dataclass(frozen=True)
class DeadloopStatusEvent:
    is_paused: bool


@dataclass(frozen=True)
class ServerErrorEvent:
    message: str


@dataclass(frozen=True)
class UnknownEvent:
    type: str
    raw: JsonObject


DomainEvent: TypeAlias = (
    AuthenticatedEvent
    | AuthenticationFailedEvent
    | AgentsListedEvent
    | SessionsListedEvent
    | SessionStartedEvent
    | SessionStatusEvent
    | OutputEvent
    | StreamMessageEvent
    | UserInputEvent
    | SessionMessagesEvent
    | DeadloopStatusEvent
    | ServerErrorEvent
    | UnknownEvent
)


# --- Outbound commands ---


@dataclass(frozen=True)
class Authenticate:
    TYPE: ClassVar[str] = "authenticate"
    token: str


@dataclass(frozen=True)
class StartSession:
    TYPE: ClassVar[str] = "start_session"
    cli_client_id: str | None = None


@dataclass(frozen=True)
class AttachSession:
    TYPE: ClassVar[str] = "attach_session"
    session_id: str


@dataclass(frozen=True)
class ListCliClients:
    TYPE: ClassVar[str] = "list_cli_clients"


@dataclass(frozen=True)
class ListSessions:
    TYPE: ClassVar[str] = "list_sessions"


@dataclass(frozen=True)
class GetSessionMessages:
    TYPE: ClassVar[str] = "get_session_messages"
    session_id: str
    limit: int | None = None
    before_id: str | None = None


@dataclass(frozen=True)
class Input:
    TYPE: ClassVar[str] = "input"
    text: str
    pane_type: str | None = None


@dataclass(frozen=True)
class Approve:
    TYPE: ClassVar[str] = "approve"
    tool_call_id: str


@dataclass(frozen=True)
class Reject:
    TYPE: ClassVar[str] = "reject"
    tool_call_id: str


@dataclass(frozen=True)
class PauseDeadloop:
    TYPE: ClassVar[str] = "pause_deadloop"


@dataclass(frozen=True)
class ResumeDeadloop:
    TYPE: ClassVar[str] = "resume_deadloop"


Command: TypeAlias = (
    Authenticate
    | StartSession
    | AttachSession
    | ListCliClients
    | ListSessions
    | GetSessionMessages
    | Input
    | Approve
    | Reject
    | PauseDeadloop
    | ResumeDeadloop
)


def encode(command: Command) -> str:
    """Encode a command as a JSON text frame. Unset optional fields are omitted."""
    payload: dict[str, object] = {"type": command.TYPE}
    for f in fields(command):
        value = getattr(command, f.name)
        if value is not None:
            payload[f.name] = value
    return json.dumps(payload)


# --- Kind mapping ---


def _kind_from_tag(tag: str, body: dict[str, Any]) -> EntryKind:
    if tag == "code":
        language = body.get("language")
        return Code(language=language if isinstance(language, str) else None)
    if tag == "tool_use":
        tool = body.get("tool", body.get("name"))
        if isinstance(tool, str):
            return ToolInvocation(tool=tool, input=body.get("input"))
        return Text()
    if tag == "tool_result":
        tool = body.get("tool", body.get("name"))
        success = body.get("success")
        if not isinstance(success, bool) and isinstance(body.get("is_error"), bool):
            success = not body["is_error"]
        if isinstance(tool, str) and isinstance(success, bool):
            return ToolOutcome(tool=tool, success=success)
        return Text()
    if tag == "approval_request":
        request_id = body.get("tool_call_id", body.get("request_id"))
        tool = body.get("tool")
        description = body.get("description", "")
        if isinstance(request_id, str) and isinstance(tool, str) and isinstance(description, str):
            return ApprovalRequest(request_id=request_id, tool=tool, description=description)
        return Text()
    if tag in ("system", "result"):
        return SystemNotice()
    if tag == "error":
        return ErrorNotice()
    return Text()


def kind_from_output_type(value: object) -> EntryKind:
    """Map an `output.output_type` value to an entry kind.

    Accepts a bare tag (`"text"`), an internally tagged object
    (`{"type": "code", ...}`) or an externally tagged object
    (`{"code": {...}}`).
    """
    if isinstance(value, str):
        return _kind_from_tag(value, {})
    if isinstance(value, dict):
        tag = value.get("type")
        if isinstance(tag, str):
            return _kind_from_tag(tag, value)
        if len(value) == 1:
            (tag, body), *_ = value.items()
            return _kind_from_tag(tag, body if isinstance(body, dict) else {})
    return Text()


_NESTED_JSON_TYPES = frozenset({"tool_use", "tool_result", "approval_request"})


def kind_from_row(message_type: str, content: str) -> EntryKind:
    """Map a history row's `message_type` to an entry kind.

    Tool and approval rows carry their details as a JSON-encoded string in
    `content`; if that cannot be recovered the row degrades to Text.
    """
    if message_type not in _NESTED_JSON_TYPES:
        return _kind_from_tag(message_type, {})
    try:
        payload = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Degrading {} row to text: content is not JSON", message_type)
        return Text()
    if not isinstance(payload, dict):
        return Text()
    return _kind_from_tag(message_type, payload)


def _role(value: str) -> Role:
    try:
        return Role(value)
    except ValueError:
        return Role.SYSTEM


def entries_from_stream_message(message: dict[str, Any], now: datetime) -> list[ConversationEntry]:
    """Translate one agent stream-JSON message into conversation entries."""
    msg_type = message.get("type")
    entries: list[ConversationEntry] = []

    if msg_type == "assistant":
        inner = message.get("message")
        blocks = inner.get("content") if isinstance(inner, dict) else None
        if not isinstance(blocks, list):
            return entries
        for block in blocks:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and isinstance(block.get("text"), str):
                entries.append(ConversationEntry(new_entry_id(), Role.ASSISTANT, block["text"], now, Text()))
            elif block_type == "tool_use":
                name = block.get("name") if isinstance(block.get("name"), str) else "unknown"
                tool_input = block.get("input")
                entries.append(
                    ConversationEntry(
                        new_entry_id(),
                        Role.ASSISTANT,
                        f"Using {name}: {json.dumps(tool_input)}",
                        now,
                        ToolInvocation(tool=name, input=tool_input),
                    )
                )
    elif msg_type == "result":
        subtype = message.get("subtype", "")
        cost = message.get("total_cost_usd")
        cost = cost if isinstance(cost, (int, float)) else 0.0
        duration_ms = message.get("duration_ms", 0)
        entries.append(
            ConversationEntry(
                new_entry_id(),
                Role.SYSTEM,
                f"{subtype} - Cost: ${cost:.4f}, Duration: {duration_ms}ms",
                now,
                SystemNotice(),
            )
        )
    return entries


# --- Decoding ---

_ADAPTERS: dict[type, TypeAdapter[Any]] = {}


def _validate(cls: type, data: object) -> Any:
    adapter = _ADAPTERS.get(cls)
    if adapter is None:
        adapter = _ADAPTERS[cls] = TypeAdapter(cls)
    return adapter.validate_python(data)


def _valid_items(cls: type, items: list[Any], what: str) -> list[Any]:
    valid = []
    for item in items:
        try:
            valid.append(_validate(cls, item))
        except ValidationError as e:
            logger.warning("Dropping malformed {}: {}", what, e.errors()[0]["msg"] if e.errors() else e)
    return valid


def _agent(wire: _WireCliClient) -> RemoteAgent:
    try:
        status = AgentStatus(wire.status)
    except ValueError:
        status = AgentStatus.OFFLINE
    return RemoteAgent(
        id=wire.id,
        status=status,
        name=wire.name,
        last_seen=parse_timestamp(wire.last_seen),
        active_session_id=wire.active_session,
    )


def _session(wire: _WireSession) -> SessionRecord:
    return SessionRecord(
        id=wire.id,
        status=wire.status,
        agent_id=wire.cli_client_id,
        working_dir=wire.working_dir,
        hostname=wire.hostname,
        created_at=parse_timestamp(wire.created_at),
        is_shared=wire.is_shared,
        owner_email=wire.owner_email,
    )


def _history_row(wire: _WireMessageRow, now: datetime) -> HistoryRow:
    entry = ConversationEntry(
        id=wire.id,
        role=_role(wire.role),
        content=wire.content,
        created_at=parse_timestamp(wire.created_at) or now,
        kind=kind_from_row(wire.message_type, wire.content),
        pane=wire.pane_type,
    )
    return HistoryRow(entry=entry, pane=wire.pane_type)


def _decode_known(event_type: str, data: dict[str, Any], now: datetime) -> DomainEvent:
    if event_type == "authenticated":
        auth = _validate(_WireAuthenticated, data)
        return AuthenticatedEvent(user_id=auth.user_id)
    if event_type == "authentication_failed":
        failed = _validate(_WireAuthenticationFailed, data)
        return AuthenticationFailedEvent(reason=failed.reason)
    if event_type == "cli_clients":
        listing = _validate(_WireList, {"items": data.get("clients") or []})
        clients = _valid_items(_WireCliClient, listing.items, "cli client")
        return AgentsListedEvent(agents=[_agent(c) for c in clients])
    if event_type == "sessions":
        listing = _validate(_WireList, {"items": data.get("sessions") or []})
        sessions = _valid_items(_WireSession, listing.items, "session record")
        return SessionsListedEvent(sessions=[_session(s) for s in sessions])
    if event_type == "session_started":
        started = _validate(_WireSessionStarted, data)
        return SessionStartedEvent(session_id=started.session_id)
    if event_type == "session_status":
        status_msg = _validate(_WireSessionStatus, data)
        try:
            status: SessionStatus | None = SessionStatus(status_msg.status)
        except ValueError:
            status = None
        return SessionStatusEvent(status=status, raw_status=status_msg.status)
    if event_type == "output":
        output = _validate(_WireOutput, data)
        kind = kind_from_output_type(output.output_type)
        return OutputEvent(entry=ConversationEntry(new_entry_id(), Role.ASSISTANT, output.content, now, kind))
    if event_type == "stream_message":
        stream = _validate(_WireStreamMessage, data)
        entries = [
            ConversationEntry(e.id, e.role, e.content, e.created_at, e.kind, stream.pane_type)
            for e in entries_from_stream_message(stream.message, now)
        ]
        return StreamMessageEvent(session_id=stream.session_id, entries=entries, pane=stream.pane_type)
    if event_type == "user_input":
        user_input = _validate(_WireUserInput, data)
        entry = ConversationEntry(new_entry_id(), Role.USER, user_input.text, now, Text(), user_input.pane_type)
        return UserInputEvent(session_id=user_input.session_id, entry=entry, pane=user_input.pane_type)
    if event_type == "session_messages":
        page = _validate(_WireSessionMessages, data)
        rows = _valid_items(_WireMessageRow, page.messages, "history row")
        return SessionMessagesEvent(
            session_id=page.session_id,
            rows=[_history_row(r, now) for r in rows],
            has_more=page.has_more,
        )
    if event_type == "deadloop_status":
        deadloop = _validate(_WireDeadloopStatus, data)
        return DeadloopStatusEvent(is_paused=deadloop.is_paused)
    # "error"
    error = _validate(_WireError, data)
    return ServerErrorEvent(message=error.message)


KNOWN_EVENT_TYPES = frozenset(
    {
        "authenticated",
        "authentication_failed",
        "cli_clients",
        "sessions",
        "session_started",
        "session_status",
        "output",
        "stream_message",
        "user_input",
        "session_messages",
        "deadloop_status",
        "error",
    }
)


def decode(raw: str | bytes, *, now: datetime | None = None) -> DomainEvent:
    """Decode one inbound text frame.

    Args:
        raw: The frame as received.
        now: Receive time stamped on locally created entries (defaults to now).

    Returns:
        The decoded event; UnknownEvent for unrecognized types.

    Raises:
        DecodeError: If the frame is not a tagged JSON object or a known event
            fails validation.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e.msg}", text) from e
    if not isinstance(data, dict):
        raise DecodeError("Event is not a JSON object", text)
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise DecodeError("Event has no type tag", text)

    if event_type not in KNOWN_EVENT_TYPES:
        return UnknownEvent(type=event_type, raw=data)

    try:
        return _decode_known(event_type, data, now or utc_now())
    except ValidationError as e:
        raise DecodeError(f"Invalid {event_type} event: {e.error_count()} error(s)", text) from e


def describe(raw: str) -> str:
    """Log-friendly preview of a raw frame."""
    return preview(raw, LOG_PAYLOAD_PREVIEW_CHARS)
