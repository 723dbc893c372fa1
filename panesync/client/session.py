"""Session coordination: which remote session the view is about.

The coordinator owns the session-view flags, the agent and session
directory, and the background poll. It reacts to connection lifecycle
callbacks from ConnectionManager and turns user operations into wire
commands. Every operation returns a CommandResult instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from loguru import logger

from panesync.client.connection import ConnectionManager
from panesync.client.directory import build_project_list
from panesync.client.history import MessageHistoryStore
from panesync.client.models import (
    ALREADY_LOADING,
    NO_HISTORY_LOADED,
    NO_MORE_HISTORY,
    NO_SESSION,
    NOT_CONNECTED,
    SESSION_NOT_ACTIVE,
    CommandResult,
    ConversationEntry,
    ErrorNotice,
    ProjectInfo,
    RemoteAgent,
    Role,
    SessionRecord,
    SessionStatus,
    Text,
    new_entry_id,
)
from panesync.client.panes import PaneRouter
from panesync.client.protocol import (
    AgentsListedEvent,
    Approve,
    AttachSession,
    DeadloopStatusEvent,
    DomainEvent,
    GetSessionMessages,
    Input,
    ListCliClients,
    ListSessions,
    OutputEvent,
    PauseDeadloop,
    Reject,
    ResumeDeadloop,
    ServerErrorEvent,
    SessionMessagesEvent,
    SessionsListedEvent,
    SessionStartedEvent,
    SessionStatusEvent,
    StartSession,
    StreamMessageEvent,
    UnknownEvent,
    UserInputEvent,
)
from panesync.client.timers import PeriodicTimer, Scheduler
from panesync.config.schema import ClientConfig
from panesync.utils import utc_now

ChangeKind = Literal["history", "view", "directory", "connection"]
ChangeListener = Callable[[ChangeKind], None]


class SessionPhase(str, Enum):
    NO_SESSION = "no_session"
    PENDING = "pending"
    ATTACHED = "attached"
    HISTORY_ONLY = "history_only"


@dataclass(frozen=True)
class SessionViewState:
    """Snapshot of what the view is showing."""

    current_session_id: str | None
    is_attached: bool
    is_dual_pane: bool
    is_loading_more: bool
    has_more_history: bool
    is_deadloop_paused: bool
    phase: SessionPhase


class SessionCoordinator:
    """Drives session lifecycle and routes inbound conversation events."""

    def __init__(
        self,
        connection: ConnectionManager,
        scheduler: Scheduler,
        config: ClientConfig | None = None,
        store: MessageHistoryStore | None = None,
    ) -> None:
        self.connection = connection
        self.config = config or connection.config
        self.store = store or MessageHistoryStore()
        self.router = PaneRouter(self.store)

        self.agents: list[RemoteAgent] = []
        self.sessions: list[SessionRecord] = []
        self.current_session_id: str | None = None
        self.is_attached = False
        self.is_loading_more = False
        self.is_deadloop_paused = False
        self._pending = False
        self._awaiting_start = False

        self._poller = PeriodicTimer(scheduler, self.config.poll_interval_s, self._poll, "session-poll")
        self._listeners: list[ChangeListener] = []
        connection.set_observer(self)

    # --- Observation ---

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register for change notifications. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, *kinds: ChangeKind) -> None:
        for kind in kinds:
            for listener in list(self._listeners):
                listener(kind)

    @property
    def phase(self) -> SessionPhase:
        if self.current_session_id is None:
            return SessionPhase.NO_SESSION
        if self.is_attached:
            return SessionPhase.ATTACHED
        if self._pending:
            return SessionPhase.PENDING
        return SessionPhase.HISTORY_ONLY

    @property
    def view(self) -> SessionViewState:
        return SessionViewState(
            current_session_id=self.current_session_id,
            is_attached=self.is_attached,
            is_dual_pane=self.router.is_dual_pane,
            is_loading_more=self.is_loading_more,
            has_more_history=self.store.has_more,
            is_deadloop_paused=self.is_deadloop_paused,
            phase=self.phase,
        )

    @property
    def polling(self) -> bool:
        return self._poller.active

    def projects(self) -> list[ProjectInfo]:
        return build_project_list(self.sessions, self.agents)

    # --- User operations ---

    def refresh(self) -> CommandResult:
        """Request fresh agent and session listings."""
        result = self.connection.send(ListCliClients())
        if not result.ok:
            return result
        return self.connection.send(ListSessions())

    def start(self, agent_id: str | None = None) -> CommandResult:
        """Ask the server for a new session, optionally on a specific agent."""
        if not self.connection.is_live:
            return CommandResult.failure(NOT_CONNECTED)
        self._reset_conversation()
        self.current_session_id = None
        self.is_attached = False
        self._pending = False
        self._awaiting_start = True
        logger.info("Starting session (agent={})", agent_id or "any")
        self._notify("history", "view")
        return self.connection.send(StartSession(cli_client_id=agent_id))

    def attach(self, session_id: str) -> CommandResult:
        """Subscribe to live updates for a session.

        Switching to a different session clears every pane first. Attaching
        to the session already in view keeps its history and pane layout until
        the server's page replaces the history.
        """
        if not self.connection.is_live:
            return CommandResult.failure(NOT_CONNECTED)

        if session_id != self.current_session_id:
            logger.info("Attaching to session {}", session_id)
            self._reset_conversation()
            self.current_session_id = session_id
            self.is_attached = False
            self._notify("history")
        else:
            logger.debug("Re-attaching to session {}", session_id)
            self.is_attached = True
        self._pending = False
        self._awaiting_start = False
        self._notify("view")
        return self.connection.send(AttachSession(session_id=session_id))

    def view_history_only(self, session_id: str) -> CommandResult:
        """Show a session's persisted history without subscribing to it."""
        if not self.connection.is_live:
            return CommandResult.failure(NOT_CONNECTED)
        logger.info("Viewing history of session {}", session_id)
        self._reset_conversation()
        self.current_session_id = session_id
        self.is_attached = False
        self._pending = False
        self._awaiting_start = False
        self._notify("history", "view")
        return self.connection.send(
            GetSessionMessages(session_id=session_id, limit=self.config.history_page_size)
        )

    def select_project(self, project: ProjectInfo) -> CommandResult:
        if project.is_live:
            return self.attach(project.session_id)
        return self.view_history_only(project.session_id)

    def load_more(self) -> CommandResult:
        """Request the page of history older than everything loaded."""
        if not self.connection.is_live:
            return CommandResult.failure(NOT_CONNECTED)
        if self.current_session_id is None:
            return CommandResult.failure(NO_SESSION)
        if self.is_loading_more:
            return CommandResult.failure(ALREADY_LOADING)
        if not self.store.has_more:
            return CommandResult.failure(NO_MORE_HISTORY)
        oldest = self.store.oldest_entry_across_panes()
        if oldest is None:
            return CommandResult.failure(NO_HISTORY_LOADED)

        result = self.connection.send(
            GetSessionMessages(
                session_id=self.current_session_id,
                limit=self.config.history_page_size,
                before_id=oldest.id,
            )
        )
        if result.ok:
            self.is_loading_more = True
            self._notify("view")
        return result

    def send_text(self, text: str, pane: str | None = None) -> CommandResult:
        """Send user input, showing it optimistically in its pane."""
        result = self._require_active_session()
        if not result.ok:
            return result
        entry = ConversationEntry(new_entry_id(), Role.USER, text, utc_now(), Text(), pane)
        self.router.route(entry, pane)
        self._notify("history", "view")
        return self.connection.send(Input(text=text, pane_type=pane))

    def approve(self, tool_call_id: str) -> CommandResult:
        result = self._require_active_session()
        return self.connection.send(Approve(tool_call_id=tool_call_id)) if result.ok else result

    def reject(self, tool_call_id: str) -> CommandResult:
        result = self._require_active_session()
        return self.connection.send(Reject(tool_call_id=tool_call_id)) if result.ok else result

    def pause_deadloop(self) -> CommandResult:
        result = self._require_active_session()
        return self.connection.send(PauseDeadloop()) if result.ok else result

    def resume_deadloop(self) -> CommandResult:
        result = self._require_active_session()
        return self.connection.send(ResumeDeadloop()) if result.ok else result

    def _require_active_session(self) -> CommandResult:
        if not self.connection.is_live:
            return CommandResult.failure(NOT_CONNECTED)
        if self.current_session_id is None:
            return CommandResult.failure(NO_SESSION)
        if not (self.is_attached or self._pending):
            return CommandResult.failure(SESSION_NOT_ACTIVE)
        return CommandResult.success()

    def _reset_conversation(self) -> None:
        self.store.clear()
        self.router.reset()
        self.is_loading_more = False
        self.is_deadloop_paused = False

    # --- Connection observer ---

    def on_live(self) -> None:
        self.refresh()
        self._poller.start()
        if self.current_session_id is not None and self.is_attached:
            self.attach(self.current_session_id)

    def on_resync(self) -> None:
        self.refresh()
        if self.current_session_id is not None and self.is_attached:
            self.attach(self.current_session_id)

    def on_connection_lost(self) -> None:
        self._poller.stop()
        self.agents = []
        self.is_loading_more = False
        self._notify("directory", "view")

    def on_teardown(self) -> None:
        self._poller.stop()
        self._reset_conversation()
        self.agents = []
        self.sessions = []
        self.current_session_id = None
        self.is_attached = False
        self._pending = False
        self._awaiting_start = False
        self._notify("history", "view", "directory")

    def on_event(self, event: DomainEvent) -> None:
        match event:
            case AgentsListedEvent(agents=agents):
                self.agents = list(agents)
                self._notify("directory")
            case SessionsListedEvent(sessions=sessions):
                self.sessions = list(sessions)
                self._notify("directory")
            case SessionStartedEvent():
                self._on_session_started(event)
            case SessionStatusEvent():
                self._on_session_status(event)
            case SessionMessagesEvent():
                self._on_session_messages(event)
            case StreamMessageEvent(session_id=session_id, entries=entries, pane=pane):
                if self._is_foreign(session_id, "stream_message"):
                    return
                for entry in entries:
                    self.router.route(entry, pane)
                self._notify("history", "view")
            case UserInputEvent(session_id=session_id, entry=entry, pane=pane):
                if self._is_foreign(session_id, "user_input"):
                    return
                self.router.route(entry, pane)
                self._notify("history", "view")
            case OutputEvent(entry=entry):
                self.router.route(entry, None)
                self._notify("history")
            case ServerErrorEvent(message=message):
                logger.warning("Server error: {}", message)
                entry = ConversationEntry(new_entry_id(), Role.SYSTEM, message, utc_now(), ErrorNotice())
                self.router.route(entry, None)
                if self.is_loading_more:
                    # The page request failed; allow a retry.
                    self.is_loading_more = False
                    self._notify("history", "view")
                else:
                    self._notify("history")
            case DeadloopStatusEvent(is_paused=is_paused):
                self.is_deadloop_paused = is_paused
                self._notify("view")
            case UnknownEvent(type=event_type):
                logger.debug("Ignoring unknown event type {}", event_type)
            case _:
                logger.debug("Ignoring {}", type(event).__name__)

    def _is_foreign(self, session_id: str, what: str) -> bool:
        if session_id == self.current_session_id:
            return False
        logger.debug("Discarding {} for session {} (viewing {})", what, session_id, self.current_session_id)
        return True

    def _on_session_started(self, event: SessionStartedEvent) -> None:
        if self._awaiting_start:
            logger.info("Session {} started", event.session_id)
            self._awaiting_start = False
            self.current_session_id = event.session_id
            self._pending = True
            self.is_attached = False
        elif event.session_id == self.current_session_id:
            self._pending = False
            self.is_attached = True
        else:
            logger.debug("Ignoring session_started for {}", event.session_id)
            return
        self._notify("view")

    def _on_session_status(self, event: SessionStatusEvent) -> None:
        logger.debug("Session status: {}", event.raw_status)
        if self.current_session_id is None:
            return
        if event.status is SessionStatus.CONNECTED and self._pending:
            self._pending = False
            self.is_attached = True
        elif event.status in (SessionStatus.DISCONNECTED, SessionStatus.ENDED):
            self._pending = False
            self.is_attached = False
        else:
            return
        self._notify("view")

    def _on_session_messages(self, event: SessionMessagesEvent) -> None:
        if self._is_foreign(event.session_id, "session_messages"):
            return
        if self.is_loading_more:
            self.router.load_page(event.rows, event.has_more)
            self.is_loading_more = False
        else:
            self.router.replace(event.rows, event.has_more)
        self._notify("history", "view")

    def _poll(self) -> None:
        if not self.connection.is_live:
            return
        session_id = self.current_session_id
        # Uses the listing from the previous tick; this tick's reply lands later.
        if session_id is not None and not self.is_attached:
            if any(agent.active_session_id == session_id for agent in self.agents):
                logger.info("Session {} became live; attaching", session_id)
                self.attach(session_id)
        self.refresh()
