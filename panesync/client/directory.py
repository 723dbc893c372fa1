"""Project directory: session listings merged with live agent state."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from panesync.client.models import ProjectInfo, RemoteAgent, SessionRecord

_OLDEST = datetime.min.replace(tzinfo=UTC)


def _newest_first(created_at: datetime | None) -> float:
    return -(created_at or _OLDEST).timestamp()


def project_name(session: SessionRecord) -> str:
    if session.working_dir:
        name = session.working_dir.rstrip("/").rsplit("/", 1)[-1]
        if name:
            return name
    return f"Project {session.id[:8]}"


def build_project_list(sessions: Iterable[SessionRecord], agents: Iterable[RemoteAgent]) -> list[ProjectInfo]:
    """Merge session records into one project per working directory.

    The newest session wins for each directory; sessions without a working
    directory stand alone. A project is live only when some agent currently
    reports its session as active. The persisted session status is never
    consulted for liveness. Live projects sort first, then newest first.
    """
    active_ids = {agent.active_session_id for agent in agents if agent.active_session_id}

    by_dir: dict[str, SessionRecord] = {}
    for session in sorted(sessions, key=lambda s: _newest_first(s.created_at)):
        by_dir.setdefault(session.working_dir or session.id, session)

    projects = [
        ProjectInfo(
            session_id=session.id,
            name=project_name(session),
            working_dir=key,
            hostname=session.hostname,
            is_live=session.id in active_ids,
            created_at=session.created_at,
            is_shared=session.is_shared,
            owner_email=session.owner_email,
        )
        for key, session in by_dir.items()
    ]
    projects.sort(key=lambda p: (not p.is_live, _newest_first(p.created_at)))
    return projects
