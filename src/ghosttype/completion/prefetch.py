"""Background generation driven by document edits."""

from __future__ import annotations

import logging

from .coalescer import CoalescingGate
from .context import matches_file_pattern
from .generator import RecommendationGenerator
from .models import DocumentChangeEvent, Position, TextDocument

__all__ = ["TypingPrefetcher", "DEFAULT_TYPING_DELAY"]

LOGGER = logging.getLogger(__name__)

DEFAULT_TYPING_DELAY = 0.5


class TypingPrefetcher:
    """Warm the suggestion store while the user types.

    Edits are coalesced and generation runs with a non-blocking budget
    acquisition, so prefetching never queues behind interactive requests.
    """

    def __init__(
        self,
        generator: RecommendationGenerator,
        *,
        delay: float = DEFAULT_TYPING_DELAY,
        file_pattern: str = "**/*",
        enabled: bool = True,
    ) -> None:
        self._generator = generator
        self._gate: CoalescingGate[bool] = CoalescingGate(self._prefetch, delay)
        self.file_pattern = file_pattern
        self.enabled = enabled

    @property
    def gate(self) -> CoalescingGate[bool]:
        return self._gate

    async def handle_change(self, event: DocumentChangeEvent) -> bool | None:
        """Schedule a prefetch for ``event``.

        Returns the generation outcome, or ``None`` when the event was
        ignored or superseded by a later edit.
        """

        document = event.document
        if not self.enabled or not matches_file_pattern(document.file_name, self.file_pattern):
            return None

        changes = event.changes
        position = event.cursor
        if len(changes) == 1 and changes[0].text == "" and changes[0].range_length == 1:
            LOGGER.debug("Ignoring backspace in %s", document.file_name)
            return None
        if len(changes) == 1 and changes[0].text == "\n":
            prefix = ""
            position = position.with_(line=position.line + 1, character=0)
        else:
            prefix = document.line_at(position.line)

        return await self._gate.schedule(document, position, prefix)

    async def _prefetch(self, document: TextDocument, position: Position, prefix: str) -> bool:
        return await self._generator.generate(document, position, prefix, wait=False)
