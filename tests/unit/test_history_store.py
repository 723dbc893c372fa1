"""Unit tests for MessageHistoryStore."""

import random
from datetime import timedelta

from panesync.client.history import MessageHistoryStore
from panesync.client.models import ConversationEntry, Role
from panesync.constants import PANE_DEADLOOP, PANE_INTERACTIVE, PANE_MAIN
from tests.fakes import BASE_TIME


def entry(entry_id: str, seconds: float) -> ConversationEntry:
    return ConversationEntry(entry_id, Role.ASSISTANT, entry_id, BASE_TIME + timedelta(seconds=seconds))


def ids(store: MessageHistoryStore, pane: str = PANE_MAIN) -> list[str]:
    return [e.id for e in store.entries(pane)]


def test_append_keeps_arrival_order_for_equal_timestamps():
    store = MessageHistoryStore()
    store.append(entry("a", 1))
    store.append(entry("b", 1))
    store.append(entry("c", 2))
    assert ids(store) == ["a", "b", "c"]


def test_append_inserts_late_entry_in_chronological_position():
    store = MessageHistoryStore()
    store.append(entry("a", 1))
    store.append(entry("c", 3))
    store.append(entry("b", 2))
    assert ids(store) == ["a", "b", "c"]


def test_append_rejects_duplicate_id_across_panes():
    store = MessageHistoryStore()
    assert store.append(entry("a", 1), PANE_DEADLOOP) is True
    assert store.append(entry("a", 2), PANE_INTERACTIVE) is False
    assert ids(store, PANE_INTERACTIVE) == []
    assert len(store) == 1
    assert "a" in store


def test_prepend_extends_backward_without_reordering_loaded_entries():
    store = MessageHistoryStore()
    store.prepend([entry("c", 3), entry("d", 4)], True)
    added = store.prepend([entry("a", 1), entry("b", 2)], False)
    assert added == 2
    assert ids(store) == ["a", "b", "c", "d"]
    assert store.has_more is False


def test_prepend_drops_duplicates_and_records_has_more():
    store = MessageHistoryStore()
    store.prepend([entry("b", 2), entry("c", 3)], True)
    added = store.prepend([entry("a", 1), entry("b", 2)], True)
    assert added == 1
    assert ids(store) == ["a", "b", "c"]
    assert store.has_more is True


def test_prepend_puts_older_page_first_on_timestamp_ties():
    store = MessageHistoryStore()
    store.prepend([entry("new", 5)], True)
    store.prepend([entry("old", 5)], False)
    assert ids(store) == ["old", "new"]


def test_sequence_stays_sorted_under_mixed_operations():
    rng = random.Random(7)
    store = MessageHistoryStore()
    counter = 0
    for _ in range(60):
        counter += 1
        if rng.random() < 0.5:
            store.append(entry(f"e{counter}", rng.randint(0, 50)))
        else:
            batch = [entry(f"e{counter}-{i}", rng.randint(0, 50)) for i in range(rng.randint(0, 4))]
            store.prepend(batch, True)
    times = [e.created_at for e in store.entries()]
    assert times == sorted(times)
    assert len(store.entries()) == len(store)


def test_oldest_entry_scans_every_pane():
    store = MessageHistoryStore()
    assert store.oldest_entry_across_panes() is None
    store.append(entry("d1", 10), PANE_DEADLOOP)
    store.append(entry("i1", 4), PANE_INTERACTIVE)
    store.append(entry("m1", 7), PANE_MAIN)
    oldest = store.oldest_entry_across_panes()
    assert oldest is not None
    assert oldest.id == "i1"


def test_replace_discards_previous_history():
    store = MessageHistoryStore()
    store.append(entry("old", 1))
    store.replace({PANE_DEADLOOP: [entry("x", 2)], PANE_INTERACTIVE: [entry("y", 3)]}, True)
    assert ids(store) == []
    assert ids(store, PANE_DEADLOOP) == ["x"]
    assert ids(store, PANE_INTERACTIVE) == ["y"]
    assert "old" not in store
    assert store.has_more is True


def test_clear_resets_has_more():
    store = MessageHistoryStore()
    store.prepend([entry("a", 1)], True)
    store.clear()
    assert len(store) == 0
    assert store.has_more is False
