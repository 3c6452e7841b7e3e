"""Completion backend: the three structured calls the engine relies on."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ..completion.models import CompletionCandidate, MergeResult, RankedSuggestion, TriggerContext
from . import prompts
from .client import AIClient
from .schemas import CODE_COMPLETION_SCHEMA, MERGE_CODES_SCHEMA, RERANK_SCHEMA

__all__ = ["Backend", "CompletionBackend"]

LOGGER = logging.getLogger(__name__)


class Backend(Protocol):
    """Operations the recommendation generator needs from a language model."""

    async def complete(self, context: TriggerContext, *, wait: bool = True) -> list[CompletionCandidate]: ...

    async def merge(self, prefix: str, candidate: str) -> MergeResult: ...

    async def rerank(
        self, suggestions: Sequence[tuple[str, float]], context: TriggerContext
    ) -> list[RankedSuggestion]: ...


class CompletionBackend:
    """:class:`Backend` implementation on top of :class:`AIClient`.

    ``complete`` honours ``wait`` when acquiring its request slot; ``merge``
    and ``rerank`` always wait, since they only run once a generation has
    already been admitted.
    """

    def __init__(self, client: AIClient) -> None:
        self._client = client

    @property
    def client(self) -> AIClient:
        return self._client

    @client.setter
    def client(self, client: AIClient) -> None:
        self._client = client

    async def complete(self, context: TriggerContext, *, wait: bool = True) -> list[CompletionCandidate]:
        payload = await self._client.generate_json(
            prompts.code_completion_prompt(context),
            CODE_COMPLETION_SCHEMA,
            name="code_completion",
            wait=wait,
        )
        candidates = [
            CompletionCandidate(code=item["code"], priority=float(item["priority"]))
            for item in payload["suggestions"]
        ]
        LOGGER.debug("Backend proposed %s candidate(s) for %s", len(candidates), context.file_name)
        return candidates

    async def merge(self, prefix: str, candidate: str) -> MergeResult:
        payload = await self._client.generate_json(
            prompts.merge_codes_prompt(prefix, candidate),
            MERGE_CODES_SCHEMA,
            name="merge_codes",
        )
        return MergeResult(merged_code=payload["mergedCode"], language=payload.get("language", ""))

    async def rerank(
        self, suggestions: Sequence[tuple[str, float]], context: TriggerContext
    ) -> list[RankedSuggestion]:
        payload = await self._client.generate_json(
            prompts.rerank_prompt(suggestions, context),
            RERANK_SCHEMA,
            name="rerank_suggestions",
        )
        return [
            RankedSuggestion(code=item["code"], weight=float(item["weight"]))
            for item in payload["suggestions"]
        ]
