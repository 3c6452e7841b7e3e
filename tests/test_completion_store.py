"""Tests for the suggestion store."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from ghosttype.completion.models import Suggestion
from ghosttype.completion.store import STORAGE_KEY, SuggestionStore
from ghosttype.services.session_storage import SessionStorage

from tests.helpers import MemoryStorage

SOURCE = "/work/src/calc.ts"
OTHER = "/work/src/other.ts"


def test_duplicate_upsert_increases_weight_not_count(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "const sub = b - a;", False)
    updated = store.upsert(SOURCE, "const sub = b - a;", False)

    assert len(store) == 1
    assert updated.weight == 2.0


def test_upsert_inserts_new_entries_at_front_and_keeps_positions(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "first", False)
    store.upsert(SOURCE, "second", False)
    store.upsert(SOURCE, "first", True)

    texts = [entry.completion_text for entry in store.snapshot()]
    assert texts == ["second", "first"]
    first = store.lookup(SOURCE, "first")[0]
    assert first.weight == 2.0
    assert first.is_line_start is False


def test_reinforcing_the_front_entry_updates_it(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "only", False)
    store.upsert(SOURCE, "only", False)

    assert [entry.weight for entry in store.snapshot()] == [2.0]


def test_same_text_in_two_sources_is_two_entries(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "import os", True)
    store.upsert(OTHER, "import os", True)

    assert len(store) == 2
    assert store.sources() == [OTHER, SOURCE]


def test_lookup_returns_exact_matching_subset(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "const sub = b - a;", False)
    store.upsert(SOURCE, "const add = a + b;", False)
    store.upsert(SOURCE, "Const upper = 1;", False)
    store.upsert(OTHER, "const sub = 0;", False)

    hits = store.lookup(SOURCE, "const s")

    assert [hit.completion_text for hit in hits] == ["const sub = b - a;"]
    assert store.lookup("/unknown.ts", "") == []


def test_lookup_filters_on_trigger_kind(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "return a;", True)
    store.upsert(SOURCE, "return b;", False)

    assert [hit.completion_text for hit in store.lookup(SOURCE, "return", is_line_start=True)] == ["return a;"]
    assert [hit.completion_text for hit in store.lookup(SOURCE, "return", is_line_start=False)] == ["return b;"]
    assert len(store.lookup(SOURCE, "return")) == 2


def test_lookup_returns_copies(store: SuggestionStore) -> None:
    store.upsert(SOURCE, "x = 1", False)

    store.lookup(SOURCE, "")[0].weight = 99

    assert store.lookup(SOURCE, "")[0].weight == 1.0


def test_scoped_replace_all_keeps_other_sources(store: SuggestionStore) -> None:
    store.upsert(OTHER, "keep me", False)
    store.upsert(SOURCE, "old", False)

    store.replace_all(
        [Suggestion(SOURCE, "new", 3.0), Suggestion(SOURCE, "new", 1.0), Suggestion(SOURCE, "newer", 2.0)],
        source_id=SOURCE,
    )

    assert [(e.source_id, e.completion_text, e.weight) for e in store.snapshot()] == [
        (SOURCE, "new", 3.0),
        (SOURCE, "newer", 2.0),
        (OTHER, "keep me", 1.0),
    ]


def test_unscoped_replace_all_and_clear(store: SuggestionStore) -> None:
    store.upsert(OTHER, "gone", False)

    store.replace_all([Suggestion(SOURCE, "fresh")])
    assert [e.completion_text for e in store.snapshot()] == ["fresh"]

    store.clear()
    assert len(store) == 0


def test_detached_copy_does_not_touch_original(store: SuggestionStore, storage: MemoryStorage) -> None:
    store.upsert(SOURCE, "base", False)
    writes = storage.writes

    staged = store.detached()
    staged.upsert(SOURCE, "staged", False)

    assert [e.completion_text for e in store.snapshot()] == ["base"]
    assert storage.writes == writes


def test_every_mutation_is_persisted(store: SuggestionStore, storage: MemoryStorage) -> None:
    store.upsert(SOURCE, "a", True)

    assert storage.values[STORAGE_KEY] == [
        {"source_id": SOURCE, "completion_text": "a", "weight": 1.0, "is_line_start": True}
    ]

    store.clear()
    assert storage.values[STORAGE_KEY] == []


def test_restores_from_session_storage(tmp_path: Path) -> None:
    storage = SessionStorage(tmp_path / "session.json")
    SuggestionStore(storage=storage).upsert(SOURCE, "persisted", False)

    restored = SuggestionStore(storage=SessionStorage(tmp_path / "session.json"))

    assert [e.completion_text for e in restored.snapshot()] == ["persisted"]


def test_restore_skips_invalid_entries() -> None:
    storage = MemoryStorage(
        {
            STORAGE_KEY: [
                {"source_id": SOURCE, "completion_text": "ok", "weight": 2},
                {"source_id": SOURCE, "completion_text": "bad", "weight": "heavy"},
                "not a mapping",
                {"completion_text": "no source"},
            ]
        }
    )

    store = SuggestionStore(storage=storage)

    assert [(e.completion_text, e.weight) for e in store.snapshot()] == [("ok", 2.0)]


def test_persist_failure_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    class _ReadOnlyStorage(MemoryStorage):
        def update(self, key, value):
            raise OSError("disk full")

    store = SuggestionStore(storage=_ReadOnlyStorage())

    with caplog.at_level("WARNING"):
        store.upsert(SOURCE, "kept in memory", False)

    assert len(store) == 1
    assert "disk full" in caplog.text


def test_replace_all_is_atomic_for_concurrent_lookups() -> None:
    batch_a = [Suggestion(SOURCE, f"a{index}") for index in range(50)]
    batch_b = [Suggestion(SOURCE, f"b{index}") for index in range(30)]
    store = SuggestionStore(batch_a)
    stop = threading.Event()

    def writer() -> None:
        while not stop.is_set():
            store.replace_all(batch_b, source_id=SOURCE)
            store.replace_all(batch_a, source_id=SOURCE)

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        for _ in range(2_000):
            texts = {hit.completion_text[0] for hit in store.lookup(SOURCE, "")}
            count = len(store.lookup(SOURCE, ""))
            assert len(texts) == 1
            assert count in (30, 50)
    finally:
        stop.set()
        thread.join()
