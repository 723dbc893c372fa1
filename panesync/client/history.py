"""Per-pane conversation history with backward pagination."""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable

from loguru import logger

from panesync.client.models import ConversationEntry
from panesync.constants import DUAL_PANES, PANE_MAIN


class MessageHistoryStore:
    """Ordered ledger of conversation entries per pane.

    Invariants, per pane, after every mutation:
    - entries are non-decreasing by `created_at`; ties keep arrival order
    - an entry id appears at most once across the whole store

    `has_more` is whatever the server last reported for a history page; it is
    never derived locally.
    """

    def __init__(self) -> None:
        self._panes: dict[str, list[ConversationEntry]] = {PANE_MAIN: [], **{p: [] for p in DUAL_PANES}}
        self._ids: set[str] = set()
        self.has_more = False

    def entries(self, pane: str = PANE_MAIN) -> list[ConversationEntry]:
        """Snapshot of one pane's sequence."""
        return list(self._panes.get(pane, ()))

    def panes(self) -> dict[str, list[ConversationEntry]]:
        return {name: list(seq) for name, seq in self._panes.items()}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._ids

    def _pane(self, pane: str) -> list[ConversationEntry]:
        return self._panes.setdefault(pane, [])

    def append(self, entry: ConversationEntry, pane: str = PANE_MAIN) -> bool:
        """Add one entry at its chronological position.

        Returns False when the id is already present.
        """
        if entry.id in self._ids:
            logger.debug("Skipping duplicate entry {}", entry.id)
            return False
        seq = self._pane(pane)
        if not seq or seq[-1].created_at <= entry.created_at:
            seq.append(entry)
        else:
            # Clock skew between server and local timestamps; keep the sequence sorted.
            index = bisect_right([e.created_at for e in seq], entry.created_at)
            seq.insert(index, entry)
        self._ids.add(entry.id)
        return True

    def prepend(self, entries: Iterable[ConversationEntry], has_more: bool, pane: str = PANE_MAIN) -> int:
        """Extend a pane backward with an older page.

        Previously loaded entries keep their relative order; duplicate ids are
        dropped. Returns the number of entries added.
        """
        self.has_more = has_more
        batch: list[ConversationEntry] = []
        for entry in entries:
            if entry.id in self._ids:
                continue
            self._ids.add(entry.id)
            batch.append(entry)
        if not batch:
            return 0

        batch.sort(key=lambda e: e.created_at)
        seq = self._pane(pane)
        merged: list[ConversationEntry] = []
        i = j = 0
        # Stable merge: on equal timestamps the older page goes first.
        while i < len(batch) and j < len(seq):
            if batch[i].created_at <= seq[j].created_at:
                merged.append(batch[i])
                i += 1
            else:
                merged.append(seq[j])
                j += 1
        merged.extend(batch[i:])
        merged.extend(seq[j:])
        self._panes[pane] = merged
        return len(batch)

    def replace(self, batches: dict[str, list[ConversationEntry]], has_more: bool) -> None:
        """Drop all history and load a fresh first page."""
        self.clear()
        for pane, entries in batches.items():
            self.prepend(entries, has_more, pane)
        self.has_more = has_more

    def clear(self) -> None:
        for seq in self._panes.values():
            seq.clear()
        self._ids.clear()
        self.has_more = False

    def oldest_entry_across_panes(self) -> ConversationEntry | None:
        """Oldest entry over every populated pane.

        Its id is the pagination cursor, so the next page is strictly older
        than anything loaded in any pane.
        """
        heads = [seq[0] for seq in self._panes.values() if seq]
        if not heads:
            return None
        return min(heads, key=lambda e: e.created_at)
