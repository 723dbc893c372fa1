"""Client facade wiring connection, session and change notifications."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from panesync.client.connection import ConnectionManager, ConnectionStatus
from panesync.client.credentials import CredentialStore, FileCredentialStore
from panesync.client.foreground import ForegroundSignal
from panesync.client.models import CommandResult, ConversationEntry, ProjectInfo, RemoteAgent, SessionRecord
from panesync.client.session import ChangeKind, ChangeListener, SessionCoordinator, SessionViewState
from panesync.client.timers import AsyncioScheduler, Scheduler
from panesync.client.transport import Transport, TransportFactory, WebSocketTransport
from panesync.config.schema import ClientConfig
from panesync.constants import PANE_MAIN


class PaneSyncClient:
    """Connection and session state for one remote conversation view.

    Presentation code reads `status`, `view`, `entries()` and `projects()`,
    calls the operations, and subscribes to change kinds
    (`history`, `view`, `directory`, `connection`) to know when to re-read.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        credentials: CredentialStore | None = None,
        transport_factory: TransportFactory | None = None,
        scheduler: Scheduler | None = None,
        foreground: ForegroundSignal | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.credentials = credentials or FileCredentialStore(Path(self.config.credential_path))
        self.foreground = foreground or ForegroundSignal()
        scheduler = scheduler or AsyncioScheduler()

        self.connection = ConnectionManager(
            transport_factory or self._websocket_transport,
            self.credentials,
            scheduler,
            self.foreground,
            self.config,
        )
        self.session = SessionCoordinator(self.connection, scheduler, self.config)

        self._listeners: list[ChangeListener] = []
        self.session.subscribe(self._emit)
        self.connection.add_status_listener(self._on_status)

    def _websocket_transport(self) -> Transport:
        return WebSocketTransport(self.config.websocket_url, open_timeout=self.config.open_timeout_s)

    # --- Observation ---

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, kind: ChangeKind) -> None:
        for listener in list(self._listeners):
            listener(kind)

    def _on_status(self, _status: ConnectionStatus) -> None:
        self._emit("connection")

    async def wait_for(self, predicate: Callable[[], bool], timeout: float | None = None) -> bool:
        """Wait until `predicate()` holds after some change. Returns False on timeout."""
        if predicate():
            return True
        changed = asyncio.Event()
        remove = self.subscribe(lambda _kind: changed.set())
        try:
            async with asyncio.timeout(timeout):
                while not predicate():
                    changed.clear()
                    await changed.wait()
            return True
        except TimeoutError:
            logger.debug("wait_for timed out after {}s", timeout)
            return False
        finally:
            remove()

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def view(self) -> SessionViewState:
        return self.session.view

    @property
    def agents(self) -> list[RemoteAgent]:
        return list(self.session.agents)

    @property
    def sessions(self) -> list[SessionRecord]:
        return list(self.session.sessions)

    def entries(self, pane: str = PANE_MAIN) -> list[ConversationEntry]:
        return self.session.store.entries(pane)

    def projects(self) -> list[ProjectInfo]:
        return self.session.projects()

    # --- Operations ---

    def connect(self) -> None:
        self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    def refresh(self) -> CommandResult:
        return self.session.refresh()

    def start_session(self, agent_id: str | None = None) -> CommandResult:
        return self.session.start(agent_id)

    def attach(self, session_id: str) -> CommandResult:
        return self.session.attach(session_id)

    def view_history_only(self, session_id: str) -> CommandResult:
        return self.session.view_history_only(session_id)

    def select_project(self, project: ProjectInfo) -> CommandResult:
        return self.session.select_project(project)

    def load_more(self) -> CommandResult:
        return self.session.load_more()

    def send_text(self, text: str, pane: str | None = None) -> CommandResult:
        return self.session.send_text(text, pane)

    def approve(self, tool_call_id: str) -> CommandResult:
        return self.session.approve(tool_call_id)

    def reject(self, tool_call_id: str) -> CommandResult:
        return self.session.reject(tool_call_id)

    def pause_deadloop(self) -> CommandResult:
        return self.session.pause_deadloop()

    def resume_deadloop(self) -> CommandResult:
        return self.session.resume_deadloop()
