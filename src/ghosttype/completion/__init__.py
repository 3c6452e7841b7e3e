"""Inline completion engine: store, generation, coalescing and the host-facing provider."""

from .budget import ConcurrencyBudget
from .coalescer import CoalescingGate
from .generator import RecommendationGenerator
from .models import (
    DocumentChangeEvent,
    DocumentSnapshot,
    InlineCompletionItem,
    Position,
    Range,
    Suggestion,
    TextChange,
    TriggerContext,
)
from .prefetch import TypingPrefetcher
from .provider import InlineCompletionProvider
from .store import SuggestionStore

__all__ = [
    "CoalescingGate",
    "ConcurrencyBudget",
    "DocumentChangeEvent",
    "DocumentSnapshot",
    "InlineCompletionItem",
    "InlineCompletionProvider",
    "Position",
    "Range",
    "RecommendationGenerator",
    "Suggestion",
    "SuggestionStore",
    "TextChange",
    "TriggerContext",
    "TypingPrefetcher",
]
