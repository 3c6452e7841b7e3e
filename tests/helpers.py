"""Shared test helpers and stub classes.

Import from here instead of duplicating fakes in individual test files.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable, Iterable, Sequence

from ghosttype.completion.budget import ConcurrencyBudget
from ghosttype.completion.models import (
    CompletionCandidate,
    MergeResult,
    RankedSuggestion,
    TriggerContext,
)


class MemoryStorage:
    """Dictionary-backed stand-in for workspace session storage."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})
        self.writes = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def update(self, key: str, value: Any) -> None:
        self.writes += 1
        if value is None:
            self.values.pop(key, None)
        else:
            self.values[key] = value


class FakeBackend:
    """Scriptable completion backend.

    ``candidates`` are returned by every ``complete`` call; ``merged`` maps a
    candidate text to the merged code; ``reranker`` receives the
    ``(code, weight)`` pairs and returns the ranked list (identity by default).
    Errors set on ``complete_error``/``rerank_error`` are raised by those calls.
    When ``budget`` is given, ``complete`` holds one of its slots.
    """

    def __init__(
        self,
        candidates: Iterable[str] = (),
        *,
        merged: dict[str, str] | None = None,
        reranker: Callable[[Sequence[tuple[str, float]]], list[RankedSuggestion]] | None = None,
        budget: ConcurrencyBudget | None = None,
    ) -> None:
        self.candidates = list(candidates)
        self.merged = dict(merged or {})
        self.reranker = reranker
        self.budget = budget
        self.complete_error: Exception | None = None
        self.rerank_error: Exception | None = None
        self.contexts: list[TriggerContext] = []
        self.merge_calls: list[tuple[str, str]] = []
        self.rerank_calls: list[list[tuple[str, float]]] = []

    async def complete(self, context: TriggerContext, *, wait: bool = True) -> list[CompletionCandidate]:
        if self.budget is not None:
            async with self.budget.slot(wait=wait):
                return self._complete(context)
        return self._complete(context)

    def _complete(self, context: TriggerContext) -> list[CompletionCandidate]:
        self.contexts.append(context)
        if self.complete_error is not None:
            raise self.complete_error
        return [CompletionCandidate(code) for code in self.candidates]

    async def merge(self, prefix: str, candidate: str) -> MergeResult:
        self.merge_calls.append((prefix, candidate))
        return MergeResult(merged_code=self.merged.get(candidate, ""))

    async def rerank(
        self, suggestions: Sequence[tuple[str, float]], context: TriggerContext
    ) -> list[RankedSuggestion]:
        pairs = list(suggestions)
        self.rerank_calls.append(pairs)
        if self.rerank_error is not None:
            raise self.rerank_error
        if self.reranker is not None:
            return self.reranker(pairs)
        return [RankedSuggestion(code, weight) for code, weight in pairs]


class FakeCompletions:
    """Stand-in for ``AsyncOpenAI().chat.completions``.

    Non-streaming calls return ``responses`` in order (the last one repeats);
    streaming calls yield ``stream_chunks`` as chat completion chunks.
    """

    def __init__(self, responses: Sequence[str | None] = (), *, stream_chunks: Sequence[str] = ()) -> None:
        self.responses = list(responses)
        self.stream_chunks = list(stream_chunks)
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return _ChunkStream(self.stream_chunks)
        content = self.responses.pop(0) if len(self.responses) > 1 else (self.responses or [None])[0]
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _ChunkStream:
    def __init__(self, chunks: Iterable[str]) -> None:
        self._iterator = iter(list(chunks))

    def __aiter__(self) -> "_ChunkStream":
        return self

    async def __anext__(self) -> Any:
        try:
            text = next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc
        return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeModels:
    def __init__(self, ids: Iterable[str]) -> None:
        self._payload = [SimpleNamespace(id=model_id) for model_id in ids]
        self.calls = 0

    async def list(self) -> SimpleNamespace:
        self.calls += 1
        return SimpleNamespace(data=self._payload)


def make_openai(
    responses: Sequence[str | None] = (),
    *,
    stream_chunks: Sequence[str] = (),
    models: Iterable[str] = ("qwen2.5-coder",),
) -> SimpleNamespace:
    """Build a fake ``AsyncOpenAI`` exposing ``chat.completions`` and ``models``."""

    completions = FakeCompletions(responses, stream_chunks=stream_chunks)
    closed: list[bool] = []

    async def close() -> None:
        closed.append(True)

    return SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        models=FakeModels(models),
        close=close,
        closed=closed,
    )


async def no_diff(path: str) -> str | None:
    return None
