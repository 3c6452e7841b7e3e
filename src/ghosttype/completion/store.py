"""In-memory suggestion store persisted to workspace session storage."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Protocol, Sequence

from .models import Suggestion

__all__ = ["SuggestionStore", "STORAGE_KEY", "KeyValueStorage"]

LOGGER = logging.getLogger(__name__)

STORAGE_KEY = "ghosttype.recommendation-cache"


class KeyValueStorage(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def update(self, key: str, value: Any) -> None: ...


class SuggestionStore:
    """Ordered collection of :class:`Suggestion` entries.

    Entries are unique per ``(source_id, completion_text)``; new entries go to
    the front. Every mutation swaps the whole entry list under a lock, so a
    concurrent :meth:`lookup` sees either the previous or the next state and
    never a partial one. When a storage backend is attached the list is
    written after each mutation and restored on construction.

    Example:
        >>> store = SuggestionStore()
        >>> store.upsert("/src/a.ts", "const a = 1;", is_line_start=False).weight
        1.0
        >>> store.upsert("/src/a.ts", "const a = 1;", is_line_start=False).weight
        2.0
    """

    def __init__(
        self,
        entries: Iterable[Suggestion] | None = None,
        *,
        storage: KeyValueStorage | None = None,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        self._lock = threading.Lock()
        self._storage = storage
        self._storage_key = storage_key
        self._clears = 0
        if entries is None:
            entries = self._restore()
        self._entries: tuple[Suggestion, ...] = tuple(_copy(entry) for entry in entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def clear_count(self) -> int:
        """How many times :meth:`clear` has run on this store."""
        return self._clears

    def sources(self) -> list[str]:
        seen: dict[str, None] = {}
        for entry in self._entries:
            seen.setdefault(entry.source_id, None)
        return list(seen)

    def snapshot(self) -> list[Suggestion]:
        """Return copies of every entry in store order."""
        return [_copy(entry) for entry in self._entries]

    def detached(self) -> "SuggestionStore":
        """Return an unpersisted copy for staging changes."""
        return SuggestionStore(self._entries)

    def lookup(self, source_id: str, prefix: str, is_line_start: bool | None = None) -> list[Suggestion]:
        """Entries of ``source_id`` whose text starts with ``prefix``.

        ``is_line_start`` filters on the trigger kind when given. Results are
        copies in store order; callers sort by weight for display.
        """

        entries = self._entries
        return [
            _copy(entry)
            for entry in entries
            if entry.source_id == source_id
            and entry.completion_text.startswith(prefix)
            and (is_line_start is None or entry.is_line_start == is_line_start)
        ]

    def upsert(self, source_id: str, completion_text: str, is_line_start: bool) -> Suggestion:
        """Reinforce an existing entry or insert a new one at the front."""

        with self._lock:
            entries = list(self._entries)
            for index, entry in enumerate(entries):
                if entry.source_id == source_id and entry.completion_text == completion_text:
                    updated = Suggestion(
                        source_id=source_id,
                        completion_text=completion_text,
                        weight=entry.weight + 1,
                        is_line_start=entry.is_line_start,
                    )
                    entries[index] = updated
                    break
            else:
                updated = Suggestion(source_id, completion_text, 1.0, bool(is_line_start))
                entries.insert(0, updated)
            self._entries = tuple(entries)
            self._persist()
        return _copy(updated)

    def replace_all(self, entries: Sequence[Suggestion], *, source_id: str | None = None) -> None:
        """Install ``entries`` in one step.

        Without ``source_id`` the whole store is replaced. With it only that
        source's entries are swapped; other sources keep theirs, after the new
        block. Duplicated texts keep their first occurrence.
        """

        fresh = _dedupe(entries)
        with self._lock:
            if source_id is None:
                self._entries = fresh
            else:
                kept = tuple(entry for entry in self._entries if entry.source_id != source_id)
                self._entries = fresh + kept
            self._persist()
        LOGGER.debug("Suggestion store replaced (%s entries, scope=%s)", len(fresh), source_id or "all")

    def clear(self) -> None:
        with self._lock:
            self._entries = ()
            self._clears += 1
            self._persist()
        LOGGER.debug("Suggestion store cleared")

    def _persist(self) -> None:
        if self._storage is None:
            return
        payload = [entry.to_dict() for entry in self._entries]
        try:
            self._storage.update(self._storage_key, payload)
        except OSError as exc:
            LOGGER.warning("Failed to persist suggestion store: %s", exc)

    def _restore(self) -> list[Suggestion]:
        if self._storage is None:
            return []
        payload = self._storage.get(self._storage_key, [])
        if not isinstance(payload, list):
            LOGGER.warning("Ignoring persisted suggestions of type %s", type(payload).__name__)
            return []
        restored: list[Suggestion] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                restored.append(Suggestion.from_dict(item))
            except ValueError as exc:
                LOGGER.debug("Skipping persisted suggestion: %s", exc)
        return list(_dedupe(restored))


def _copy(entry: Suggestion) -> Suggestion:
    return Suggestion(entry.source_id, entry.completion_text, entry.weight, entry.is_line_start)


def _dedupe(entries: Iterable[Suggestion]) -> tuple[Suggestion, ...]:
    seen: set[tuple[str, str]] = set()
    result: list[Suggestion] = []
    for entry in entries:
        key = (entry.source_id, entry.completion_text)
        if key in seen:
            continue
        seen.add(key)
        result.append(_copy(entry))
    return tuple(result)
