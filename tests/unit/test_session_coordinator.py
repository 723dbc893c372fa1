"""Unit tests for SessionCoordinator driven through a fake transport."""

import pytest

from panesync.client.models import (
    ALREADY_LOADING,
    NO_HISTORY_LOADED,
    NO_MORE_HISTORY,
    NO_SESSION,
    NOT_CONNECTED,
    SESSION_NOT_ACTIVE,
    ErrorNotice,
    ProjectInfo,
    Role,
)
from panesync.client.session import SessionPhase
from panesync.constants import PANE_DEADLOOP, PANE_INTERACTIVE, PANE_MAIN
from tests.fakes import history_row


def page(session_id: str, rows: list[dict], has_more: bool) -> dict:
    return {"type": "session_messages", "session_id": session_id, "messages": rows, "has_more": has_more}


def stream_text(session_id: str, text: str, pane: str | None = None) -> dict:
    payload = {
        "type": "stream_message",
        "session_id": session_id,
        "message": {"type": "assistant", "message": {"content": [{"type": "text", "text": text}]}},
    }
    if pane:
        payload["pane_type"] = pane
    return payload


def all_ids(coordinator) -> set[str]:
    return {e.id for entries in coordinator.store.panes().values() for e in entries}


@pytest.fixture
def attached(coordinator, go_live):
    """Live connection attached to S1 with two history entries."""
    transport = go_live()
    coordinator.attach("S1")
    transport.receive({"type": "session_started", "session_id": "S1"})
    transport.receive(page("S1", [history_row("m1", 1), history_row("m2", 2)], has_more=False))
    transport.sent.clear()
    return transport


def test_authentication_bootstraps_directory_once(coordinator, connection, transports):
    connection.connect()
    transport = transports.last
    transport.open()
    transport.receive({"type": "authenticated", "user_id": "U1"})

    assert transport.command_types() == ["authenticate", "list_cli_clients", "list_sessions"]
    assert coordinator.polling is True


def test_operations_fail_when_not_connected(coordinator):
    for result in (
        coordinator.attach("S1"),
        coordinator.start(),
        coordinator.view_history_only("S1"),
        coordinator.load_more(),
        coordinator.send_text("hi"),
        coordinator.refresh(),
    ):
        assert result.ok is False
        assert result.error == NOT_CONNECTED
    assert coordinator.current_session_id is None


def test_attach_to_new_session_clears_panes(coordinator, attached):
    assert coordinator.view.phase is SessionPhase.ATTACHED
    coordinator.attach("S2")
    assert all_ids(coordinator) == set()
    assert coordinator.current_session_id == "S2"
    assert coordinator.is_attached is False
    assert attached.commands == [{"type": "attach_session", "session_id": "S2"}]

    attached.receive({"type": "session_started", "session_id": "S2"})
    assert coordinator.is_attached is True


def test_reattach_same_session_preserves_panes(coordinator, attached):
    attached.receive(stream_text("S1", "live", pane=PANE_DEADLOOP))
    before = coordinator.store.panes()

    result = coordinator.attach("S1")

    assert result.ok is True
    assert coordinator.store.panes() == before
    assert coordinator.view.is_dual_pane is True
    assert coordinator.is_attached is True
    assert attached.command_types() == ["attach_session"]


def test_reattach_page_replaces_history(coordinator, attached, foreground):
    attached.receive(stream_text("S1", "hello"))
    foreground.notify()
    rows = [history_row("m1", 1), history_row("m2", 2), history_row("m3", 3, content="hello")]
    attached.receive(page("S1", rows, has_more=True))

    contents = [e.content for e in coordinator.store.entries(PANE_MAIN)]
    assert contents == ["content m1", "content m2", "hello"]
    assert all_ids(coordinator) == {"m1", "m2", "m3"}
    assert coordinator.view.has_more_history is True


def test_reattach_page_keeps_dual_pane_layout(coordinator, attached):
    attached.receive(stream_text("S1", "planning", pane=PANE_DEADLOOP))
    coordinator.attach("S1")
    attached.receive(page("S1", [history_row("m1", 1), history_row("m2", 2)], has_more=False))

    assert coordinator.view.is_dual_pane is True
    assert coordinator.store.entries(PANE_DEADLOOP) == []
    assert [e.id for e in coordinator.store.entries(PANE_MAIN)] == ["m1", "m2"]


def test_stream_message_for_other_session_is_discarded(coordinator, attached):
    before = coordinator.store.panes()
    attached.receive(stream_text("S2", "not yours", pane=PANE_INTERACTIVE))
    attached.receive({"type": "user_input", "session_id": "S2", "text": "hi"})
    attached.receive(page("S2", [history_row("x1", 5)], has_more=True))
    assert coordinator.store.panes() == before
    assert coordinator.view.is_dual_pane is False


def test_live_push_for_current_session_routes_to_pane(coordinator, attached):
    attached.receive(stream_text("S1", "planning", pane=PANE_DEADLOOP))
    attached.receive({"type": "user_input", "session_id": "S1", "text": "go on", "pane_type": "interactive"})
    assert [e.content for e in coordinator.store.entries(PANE_DEADLOOP)] == ["planning"]
    assert [e.content for e in coordinator.store.entries(PANE_INTERACTIVE)] == ["go on"]
    assert coordinator.view.is_dual_pane is True


def test_server_error_becomes_system_entry(coordinator, attached):
    attached.receive({"type": "error", "message": "agent crashed"})
    last = coordinator.store.entries(PANE_MAIN)[-1]
    assert last.role is Role.SYSTEM
    assert last.kind == ErrorNotice()
    assert last.content == "agent crashed"


def test_pagination_yields_union_without_duplicates(coordinator, go_live):
    transport = go_live()
    coordinator.view_history_only("S1")
    assert transport.commands == [{"type": "get_session_messages", "session_id": "S1", "limit": 50}]

    first = [history_row(f"m{n:03d}", n) for n in range(50, 100)]
    transport.receive(page("S1", first, has_more=True))
    assert coordinator.view.has_more_history is True

    transport.sent.clear()
    assert coordinator.load_more().ok is True
    assert transport.commands == [
        {"type": "get_session_messages", "session_id": "S1", "limit": 50, "before_id": "m050"}
    ]
    assert coordinator.view.is_loading_more is True

    older = [history_row(f"m{n:03d}", n) for n in range(30, 51)]
    transport.receive(page("S1", older, has_more=False))

    entries = coordinator.store.entries(PANE_MAIN)
    assert [e.id for e in entries] == [f"m{n:03d}" for n in range(30, 100)]
    assert coordinator.view.is_loading_more is False
    assert coordinator.view.has_more_history is False


def test_pagination_is_idempotent_under_retry(coordinator, go_live):
    transport = go_live()
    coordinator.view_history_only("S1")
    transport.receive(page("S1", [history_row(f"m{n:03d}", n) for n in range(50, 100)], has_more=True))

    transport.sent.clear()
    assert coordinator.load_more().ok is True
    transport.receive({"type": "error", "message": "timed out"})
    assert coordinator.view.is_loading_more is False
    assert coordinator.load_more().ok is True
    first, retry = transport.commands
    assert first == retry
    assert retry["before_id"] == "m050"

    older = [history_row(f"m{n:03d}", n) for n in range(30, 50)]
    transport.receive(page("S1", older, has_more=True))
    loaded = coordinator.store.panes()
    assert loaded[PANE_MAIN][0].id == "m030"

    # The same rows answering a repeated request change nothing.
    assert coordinator.load_more().ok is True
    transport.receive(page("S1", older, has_more=True))
    assert coordinator.store.panes() == loaded
    assert coordinator.view.has_more_history is True
    assert coordinator.view.is_loading_more is False


def test_server_error_ends_pending_page_request(coordinator, go_live):
    transport = go_live()
    coordinator.view_history_only("S1")
    transport.receive(page("S1", [history_row("m1", 1)], has_more=True))
    assert coordinator.load_more().ok is True
    assert coordinator.load_more().error == ALREADY_LOADING

    transport.receive({"type": "error", "message": "session not found"})

    assert coordinator.view.is_loading_more is False
    assert coordinator.load_more().ok is True


def test_pagination_cursor_uses_oldest_entry_across_panes(coordinator, go_live):
    transport = go_live()
    coordinator.view_history_only("S1")
    transport.receive(
        page("S1", [history_row("d1", 20, pane=PANE_DEADLOOP), history_row("i1", 10, pane=PANE_INTERACTIVE)], True)
    )
    transport.sent.clear()
    coordinator.load_more()
    assert transport.commands[0]["before_id"] == "i1"


def test_load_more_guards(coordinator, go_live):
    transport = go_live()
    assert coordinator.load_more().error == NO_SESSION

    coordinator.view_history_only("S1")
    transport.receive(page("S1", [], has_more=True))
    assert coordinator.load_more().error == NO_HISTORY_LOADED

    transport.receive(page("S1", [history_row("m1", 1)], has_more=True))
    assert coordinator.load_more().ok is True
    assert coordinator.load_more().error == ALREADY_LOADING

    transport.receive(page("S1", [], has_more=False))
    assert coordinator.load_more().error == NO_MORE_HISTORY


def test_start_session_moves_through_pending(coordinator, go_live):
    transport = go_live()
    result = coordinator.start("agent-1")
    assert result.ok is True
    assert transport.commands == [{"type": "start_session", "cli_client_id": "agent-1"}]
    assert coordinator.view.phase is SessionPhase.NO_SESSION

    transport.receive({"type": "session_started", "session_id": "S9"})
    assert coordinator.current_session_id == "S9"
    assert coordinator.view.phase is SessionPhase.PENDING
    assert coordinator.send_text("hello").ok is True

    transport.receive({"type": "session_status", "status": "connected"})
    assert coordinator.view.phase is SessionPhase.ATTACHED


def test_session_status_ended_drops_attachment(coordinator, attached):
    attached.receive({"type": "session_status", "status": "ended"})
    assert coordinator.view.phase is SessionPhase.HISTORY_ONLY
    assert coordinator.send_text("anyone?").error == SESSION_NOT_ACTIVE


def test_send_text_adds_optimistic_entry_to_pane(coordinator, attached):
    result = coordinator.send_text("keep going", pane=PANE_INTERACTIVE)
    assert result.ok is True
    assert [e.content for e in coordinator.store.entries(PANE_INTERACTIVE)] == ["keep going"]
    assert coordinator.view.is_dual_pane is True
    assert attached.commands == [{"type": "input", "text": "keep going", "pane_type": "interactive"}]


def test_approval_and_deadloop_commands(coordinator, attached):
    coordinator.approve("call-1")
    coordinator.reject("call-2")
    coordinator.pause_deadloop()
    attached.receive({"type": "deadloop_status", "is_paused": True})
    assert coordinator.view.is_deadloop_paused is True
    coordinator.resume_deadloop()
    assert attached.commands == [
        {"type": "approve", "tool_call_id": "call-1"},
        {"type": "reject", "tool_call_id": "call-2"},
        {"type": "pause_deadloop"},
        {"type": "resume_deadloop"},
    ]


def test_send_text_without_session(coordinator, go_live):
    go_live()
    assert coordinator.send_text("hi").error == NO_SESSION


def test_poll_promotes_history_view_when_session_goes_live(coordinator, go_live, scheduler):
    transport = go_live()
    coordinator.view_history_only("S1")
    transport.receive(page("S1", [history_row("m1", 1)], has_more=False))
    transport.receive({"type": "cli_clients", "clients": [{"id": "a1", "status": "online", "active_session": "S1"}]})
    transport.sent.clear()

    scheduler.advance(3.0)

    assert transport.command_types() == ["attach_session", "list_cli_clients", "list_sessions"]
    assert coordinator.is_attached is True
    assert [e.id for e in coordinator.store.entries(PANE_MAIN)] == ["m1"]


def test_poll_only_refreshes_when_nothing_to_promote(coordinator, attached, scheduler):
    scheduler.advance(3.0)
    assert attached.command_types() == ["list_cli_clients", "list_sessions"]


def test_reconnect_reattaches_current_session(coordinator, attached, transports, scheduler):
    attached.drop()
    assert coordinator.polling is False
    scheduler.fire_next()
    transport = transports.last
    transport.open()
    transport.receive({"type": "authenticated", "user_id": "U1"})
    assert transport.command_types() == ["authenticate", "list_cli_clients", "list_sessions", "attach_session"]
    assert {"m1", "m2"} <= all_ids(coordinator)


def test_foreground_resync_reattaches(coordinator, attached, foreground):
    foreground.notify()
    assert attached.command_types() == ["list_cli_clients", "list_sessions", "attach_session"]


def test_connection_loss_clears_agents_and_loading_flag(coordinator, attached):
    attached.receive({"type": "cli_clients", "clients": [{"id": "a1"}]})
    assert len(coordinator.agents) == 1
    attached.drop()
    assert coordinator.agents == []
    assert coordinator.view.is_loading_more is False


def test_disconnect_resets_session_view(coordinator, connection, attached, scheduler):
    connection.disconnect()
    view = coordinator.view
    assert view.current_session_id is None
    assert view.phase is SessionPhase.NO_SESSION
    assert all_ids(coordinator) == set()
    assert coordinator.polling is False
    assert scheduler.pending() == []


def test_select_project_attaches_live_and_views_others(coordinator, go_live):
    transport = go_live()
    live = ProjectInfo("S1", "proj", "/p", None, True, None)
    idle = ProjectInfo("S2", "other", "/o", None, False, None)
    coordinator.select_project(live)
    coordinator.select_project(idle)
    assert transport.command_types() == ["attach_session", "get_session_messages"]


def test_change_notifications(coordinator, attached):
    kinds = []
    remove = coordinator.subscribe(kinds.append)
    attached.receive(stream_text("S1", "hi"))
    attached.receive({"type": "sessions", "sessions": []})
    remove()
    attached.receive(stream_text("S1", "unseen"))
    assert kinds == ["history", "view", "directory"]
