"""Pane routing for single and dual-pane conversations.

The wire protocol, not a local toggle, decides dual-pane mode: the first
event carrying a pane tag upgrades the view. Routing is a pure function of
`(is_dual_pane, tag)`, and live pushes and history pages route the same way.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from panesync.client.history import MessageHistoryStore
from panesync.client.models import ConversationEntry
from panesync.client.protocol import HistoryRow
from panesync.constants import DUAL_PANES, PANE_MAIN


def pane_for(is_dual_pane: bool, tag: str | None) -> str:
    """Pane an entry belongs to; unknown or missing tags fall back to main."""
    if is_dual_pane and tag in DUAL_PANES:
        return tag
    return PANE_MAIN


class PaneRouter:
    """Routes conversation entries into the history store."""

    def __init__(self, store: MessageHistoryStore) -> None:
        self.store = store
        self.is_dual_pane = False

    def enter_dual_pane(self) -> bool:
        """Switch to dual-pane mode. Returns True only on the actual transition."""
        if self.is_dual_pane:
            return False
        self.is_dual_pane = True
        logger.info("Entering dual-pane mode")
        return True

    def reset(self) -> None:
        self.is_dual_pane = False

    def route(self, entry: ConversationEntry, tag: str | None) -> str:
        """Append a live entry to its pane and return the pane name."""
        if tag:
            self.enter_dual_pane()
        pane = pane_for(self.is_dual_pane, tag)
        self.store.append(entry, pane)
        return pane

    def split(self, rows: Iterable[HistoryRow]) -> dict[str, list[ConversationEntry]]:
        """Split a history page into per-pane batches, preserving batch order."""
        rows = list(rows)
        if any(row.pane for row in rows):
            self.enter_dual_pane()
        batches: dict[str, list[ConversationEntry]] = {}
        for row in rows:
            batches.setdefault(pane_for(self.is_dual_pane, row.pane), []).append(row.entry)
        return batches

    def load_page(self, rows: Iterable[HistoryRow], has_more: bool) -> None:
        """Prepend an older history page, one prepend call per pane."""
        batches = self.split(rows)
        for pane, entries in batches.items():
            self.store.prepend(entries, has_more, pane)
        self.store.has_more = has_more

    def replace(self, rows: Iterable[HistoryRow], has_more: bool) -> None:
        """Replace all history with a first page."""
        self.store.replace(self.split(rows), has_more)
