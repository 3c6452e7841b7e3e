"""Recommendation generation: ask the backend, filter, stage, re-rank, commit."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from ..errors import BudgetExceededError, GhostTypeError
from ..services.git import read_git_diff
from .context import DEFAULT_PRECEDING_LINES, build_trigger_context, strip_code_fences
from .models import Position, Suggestion, TextDocument, TriggerContext
from .store import SuggestionStore

if TYPE_CHECKING:
    from ..ai.backend import Backend

__all__ = ["RecommendationGenerator", "DiffProvider"]

LOGGER = logging.getLogger(__name__)

DiffProvider = Callable[[str], Awaitable[str | None]]


class RecommendationGenerator:
    """Produce suggestions for one trigger and fold them into the store.

    A generation works on a detached copy of the store and only commits once
    the backend has re-ranked the result, so a failure at any step leaves the
    store exactly as it was. Overlapping generations each commit their own
    snapshot; the last one to finish wins. A generation that sees the store
    cleared after it staged its copy drops its result.
    """

    def __init__(
        self,
        backend: "Backend",
        store: SuggestionStore,
        *,
        diff_provider: DiffProvider | None = read_git_diff,
        preceding_lines: int = DEFAULT_PRECEDING_LINES,
        include_git_diff: bool = True,
    ) -> None:
        self._backend = backend
        self._store = store
        self._diff_provider = diff_provider
        self.preceding_lines = preceding_lines
        self.include_git_diff = include_git_diff

    @property
    def store(self) -> SuggestionStore:
        return self._store

    async def generate(
        self,
        document: TextDocument,
        position: Position,
        prefix: str,
        *,
        wait: bool = False,
        is_line_start: bool | None = None,
    ) -> bool:
        """Generate suggestions for ``prefix`` at ``position``.

        ``wait`` selects a blocking budget acquisition for the completion call;
        without it an exhausted budget skips the generation. Returns ``True``
        when the store was updated.
        """

        line_start = (prefix == "") if is_line_start is None else is_line_start
        try:
            context = await self._build_context(document, position, prefix, line_start)
            return await self._generate(context, wait=wait)
        except BudgetExceededError as exc:
            LOGGER.debug("Skipping generation for %s: %s", document.file_name, exc)
        except GhostTypeError as exc:
            LOGGER.warning("Generation failed for %s: %s", document.file_name, exc)
        return False

    async def _build_context(
        self, document: TextDocument, position: Position, prefix: str, is_line_start: bool
    ) -> TriggerContext:
        diff_text = None
        if self.include_git_diff and self._diff_provider is not None:
            diff_text = await self._diff_provider(document.file_name)
        return build_trigger_context(
            document,
            position,
            prefix,
            is_line_start=is_line_start,
            preceding_line_count=self.preceding_lines,
            diff_text=diff_text,
        )

    async def _generate(self, context: TriggerContext, *, wait: bool) -> bool:
        LOGGER.debug(
            "Generating suggestions for %s (line=%s, prefix=%r, line_start=%s)",
            context.file_name,
            context.cursor_line,
            context.prefix,
            context.is_line_start,
        )
        candidates = await self._backend.complete(context, wait=wait)

        cleared = self._store.clear_count
        staged = self._store.detached()
        accepted = 0
        for candidate in candidates:
            completion = await self._normalize(candidate.code, context)
            if not _is_usable(completion, context.prefix):
                continue
            staged.upsert(context.source_id, completion, context.is_line_start)
            accepted += 1
        LOGGER.debug("Accepted %s of %s candidate(s)", accepted, len(candidates))

        previous = staged.lookup(context.source_id, "")
        if not previous:
            return False
        ranked = await self._backend.rerank(
            [(entry.completion_text, entry.weight) for entry in previous], context
        )

        flags = {entry.completion_text: entry.is_line_start for entry in previous}
        reranked = [
            Suggestion(
                source_id=context.source_id,
                completion_text=item.code,
                weight=item.weight,
                is_line_start=flags.get(item.code, False),
            )
            for item in ranked
        ]
        if self._store.clear_count != cleared:
            LOGGER.debug("Store cleared during generation for %s; dropping result", context.file_name)
            return False
        self._store.replace_all(reranked, source_id=context.source_id)
        return True

    async def _normalize(self, code: str, context: TriggerContext) -> str:
        if not context.is_line_start:
            return code
        text = strip_code_fences(code).strip()
        if text.startswith(context.prefix):
            return text
        merged = await self._backend.merge(context.prefix, text)
        return merged.merged_code


def _is_usable(completion: str, prefix: str) -> bool:
    return completion != "" and completion != prefix and completion.startswith(prefix)
