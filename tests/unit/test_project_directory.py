"""Unit tests for the project directory merge."""

from datetime import UTC, datetime

from panesync.client.directory import build_project_list, project_name
from panesync.client.models import AgentStatus, RemoteAgent, SessionRecord


def session(session_id: str, working_dir: str | None, day: int | None, status: str = "ended", **kwargs) -> SessionRecord:
    created = datetime(2025, 3, day, tzinfo=UTC) if day else None
    return SessionRecord(id=session_id, status=status, working_dir=working_dir, created_at=created, **kwargs)


def agent(agent_id: str, active: str | None) -> RemoteAgent:
    return RemoteAgent(id=agent_id, status=AgentStatus.ONLINE, active_session_id=active)


def test_newest_session_per_directory_wins():
    projects = build_project_list(
        [session("old", "/src/app", 1), session("new", "/src/app", 5), session("lib", "/src/lib", 3)],
        [],
    )
    assert [p.session_id for p in projects] == ["new", "lib"]
    assert projects[0].name == "app"


def test_liveness_comes_only_from_agents():
    projects = build_project_list(
        [session("S1", "/a", 1, status="active"), session("S2", "/b", 2)],
        [agent("a1", "S1"), agent("a2", None)],
    )
    by_id = {p.session_id: p for p in projects}
    assert by_id["S1"].is_live is True
    assert by_id["S2"].is_live is False

    projects = build_project_list([session("S1", "/a", 1, status="active")], [])
    assert projects[0].is_live is False


def test_live_projects_sort_first_then_newest():
    projects = build_project_list(
        [session("S1", "/a", 1), session("S2", "/b", 9), session("S3", "/c", 5), session("S4", "/d", None)],
        [agent("a1", "S1")],
    )
    assert [p.session_id for p in projects] == ["S1", "S2", "S3", "S4"]


def test_sessions_without_working_dir_stand_alone():
    projects = build_project_list([session("abcdef123456", None, 1), session("zzzzzzzz9999", None, 2)], [])
    assert {p.name for p in projects} == {"Project abcdef12", "Project zzzzzzzz"}
    assert len(projects) == 2


def test_sharing_metadata_is_kept():
    (project,) = build_project_list([session("S1", "/a", 1, is_shared=True, owner_email="o@example.com")], [])
    assert project.is_shared is True
    assert project.owner_email == "o@example.com"


def test_project_name_ignores_trailing_slash():
    assert project_name(session("S1", "/home/me/site/", 1)) == "site"
