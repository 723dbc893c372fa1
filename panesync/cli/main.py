"""panesync: command line client for remote agent sessions."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from panesync import __version__
from panesync.client.client import PaneSyncClient
from panesync.client.connection import ConnectionPhase
from panesync.client.foreground import install_sigcont_handler
from panesync.client.models import ConversationEntry, ProjectInfo
from panesync.client.session import ChangeKind
from panesync.config import ClientConfig, load_client_config
from panesync.constants import PANE_MAIN
from panesync.logging_config import setup_logging

CONNECT_TIMEOUT_S = 15.0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="panesync", description="Remote agent session client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="Path to panesync.yml")
    parser.add_argument("--log-level", help="Log level (overrides PANESYNC_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sessions", help="List projects and whether they are live")

    watch = sub.add_parser("watch", help="Follow a session's conversation")
    watch.add_argument("session_id", nargs="?", default=None, help="Session id (default: newest project)")
    return parser.parse_args(argv)


def format_project(project: ProjectInfo) -> str:
    marker = "*" if project.is_live else " "
    host = f" @{project.hostname}" if project.hostname else ""
    shared = f" (shared by {project.owner_email})" if project.is_shared and project.owner_email else ""
    return f"{marker} {project.session_id[:8]}  {project.name}{host}{shared}"


def format_entry(entry: ConversationEntry, pane: str) -> str:
    prefix = f"[{pane}] " if pane != PANE_MAIN else ""
    return f"{prefix}{entry.role.value}: {entry.content}"


async def _connect(client: PaneSyncClient) -> bool:
    client.connect()
    ok = await client.wait_for(lambda: client.status.is_live or client.status.needs_login, CONNECT_TIMEOUT_S)
    if not ok or not client.status.is_live:
        reason = client.status.reason.value if ok else "timeout"
        print(f"Could not connect to {client.config.websocket_url} ({reason})", file=sys.stderr)
        return False
    return True


async def _wait_for_directory(client: PaneSyncClient) -> bool:
    # One notification per listing: agents, then sessions.
    seen: list[ChangeKind] = []
    remove = client.subscribe(lambda kind: seen.append(kind) if kind == "directory" else None)
    try:
        return await client.wait_for(lambda: len(seen) >= 2, CONNECT_TIMEOUT_S)
    finally:
        remove()


async def run_sessions(client: PaneSyncClient) -> int:
    if not await _connect(client):
        return 1
    try:
        if not await _wait_for_directory(client):
            print("Timed out waiting for the session listing", file=sys.stderr)
            return 1
        projects = client.projects()
        if not projects:
            print("No sessions")
        for project in projects:
            print(format_project(project))
        return 0
    finally:
        client.disconnect()


async def run_watch(client: PaneSyncClient, session_id: str | None) -> int:
    if not await _connect(client):
        return 1
    install_sigcont_handler(client.foreground, asyncio.get_running_loop())
    try:
        if not await _wait_for_directory(client):
            print("Timed out waiting for the session listing", file=sys.stderr)
            return 1

        projects = client.projects()
        if session_id is None:
            if not projects:
                print("No sessions to watch", file=sys.stderr)
                return 1
            target = projects[0]
            result = client.select_project(target)
        else:
            target = next((p for p in projects if p.session_id == session_id), None)
            result = client.select_project(target) if target else client.view_history_only(session_id)
        if not result.ok:
            print(f"Cannot open session: {result.error}", file=sys.stderr)
            return 1

        printed: set[str] = set()

        def print_new(kind: ChangeKind) -> None:
            if kind != "history":
                return
            for pane, entries in client.session.store.panes().items():
                for entry in entries:
                    if entry.id not in printed:
                        printed.add(entry.id)
                        print(format_entry(entry, pane), flush=True)

        client.subscribe(print_new)
        stopped = asyncio.Event()

        def stop_when_terminal(kind: ChangeKind) -> None:
            if kind == "connection" and client.status.phase is ConnectionPhase.DISCONNECTED:
                stopped.set()

        client.subscribe(stop_when_terminal)
        await stopped.wait()
        print(f"Connection lost ({client.status.reason.value})", file=sys.stderr)
        return 1
    finally:
        client.disconnect()


async def _run(args: argparse.Namespace, config: ClientConfig) -> int:
    client = PaneSyncClient(config)
    if args.command == "sessions":
        return await run_sessions(client)
    return await run_watch(client, args.session_id)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    config = load_client_config(args.config)
    setup_logging(args.log_level or config.log_level)
    try:
        code = asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        code = 130
    logger.debug("panesync exiting with code {}", code)
    sys.exit(code)


if __name__ == "__main__":
    main()
