"""Inline completion provider answering the host's ghost-text requests."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from ..errors import GhostTypeError
from ..services.commands import CLEAR_COMPLETION_CACHE
from .coalescer import CoalescingGate
from .context import is_boundary_prefix, line_prefix, matches_file_pattern, trailing_text
from .generator import RecommendationGenerator
from .models import (
    CancellationToken,
    Command,
    InlineCompletionItem,
    Position,
    Range,
    Suggestion,
    TextDocument,
)
from .store import SuggestionStore

__all__ = ["InlineCompletionProvider", "CursorLocator", "DEFAULT_COMPLETION_DELAY"]

LOGGER = logging.getLogger(__name__)

DEFAULT_COMPLETION_DELAY = 0.3

CursorLocator = Callable[[TextDocument], "Position | None"]


class InlineCompletionProvider:
    """Serve inline completions from the store, generating on a miss.

    Requests pass through a :class:`CoalescingGate`, so only the last request
    of a typing burst reaches the store. A miss, or a boundary trigger (empty
    prefix, or a prefix ending a statement or block), generates with a
    blocking budget acquisition before probing again.
    """

    def __init__(
        self,
        generator: RecommendationGenerator,
        store: SuggestionStore,
        *,
        delay: float = DEFAULT_COMPLETION_DELAY,
        cursor_locator: CursorLocator | None = None,
        file_pattern: str = "**/*",
        enabled: bool = True,
        clear_command: str = CLEAR_COMPLETION_CACHE,
    ) -> None:
        self._generator = generator
        self._store = store
        self._gate: CoalescingGate[list[InlineCompletionItem] | None] = CoalescingGate(self._provide, delay)
        self._cursor_locator = cursor_locator
        self._clear_command = clear_command
        self.file_pattern = file_pattern
        self.enabled = enabled

    @property
    def gate(self) -> CoalescingGate[list[InlineCompletionItem] | None]:
        return self._gate

    def is_eligible(self, document: TextDocument) -> bool:
        return self.enabled and matches_file_pattern(document.file_name, self.file_pattern)

    async def provide_inline_completion_items(
        self,
        document: TextDocument,
        position: Position,
        context: Any = None,
        token: CancellationToken | None = None,
    ) -> list[InlineCompletionItem] | None:
        """Return ghost-text items for ``position`` or ``None``.

        ``context`` is the host's trigger payload; it is accepted for
        signature compatibility and not inspected.
        """

        if not self.is_eligible(document):
            return None
        try:
            return await self._gate.schedule(document, position, token)
        except GhostTypeError as exc:
            LOGGER.warning("Inline completion failed for %s: %s", document.file_name, exc)
            return None

    async def _provide(
        self,
        document: TextDocument,
        position: Position,
        token: CancellationToken | None,
    ) -> list[InlineCompletionItem] | None:
        if token is not None and token.is_cancellation_requested:
            LOGGER.debug("Completion request cancelled before cache probe")
            return None

        prefix = line_prefix(document, position)
        boundary = is_boundary_prefix(prefix)
        hits = self._store.lookup(document.file_name, prefix, is_line_start=False)

        if not hits or boundary:
            await self._generator.generate(document, position, prefix, wait=True, is_line_start=boundary)
            hits = self._store.lookup(document.file_name, prefix, is_line_start=boundary)

        if not hits:
            return None
        return self._render(document, position, prefix, hits)

    def _render(
        self,
        document: TextDocument,
        position: Position,
        prefix: str,
        hits: Sequence[Suggestion],
    ) -> list[InlineCompletionItem]:
        suffix = trailing_text(document, position)
        start = position.translate(0, -len(prefix))
        end = self._live_cursor(document) or position
        command = Command(title="Clear completion cache", command=self._clear_command)

        items: list[InlineCompletionItem] = []
        for hit in sorted(hits, key=lambda entry: entry.weight, reverse=True):
            text = hit.completion_text.replace(suffix, "", 1) if suffix else hit.completion_text
            items.append(InlineCompletionItem(insert_text=text, range=Range(start, end), command=command))
        LOGGER.debug("Rendering %s item(s) for %s", len(items), document.file_name)
        return items

    def _live_cursor(self, document: TextDocument) -> Position | None:
        if self._cursor_locator is None:
            return None
        return self._cursor_locator(document)
