"""Session wiring: one set of engine objects per editor session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from openai import AsyncOpenAI

from .ai.backend import Backend, CompletionBackend
from .ai.client import AIClient, ClientSettings
from .completion.budget import ConcurrencyBudget
from .completion.generator import RecommendationGenerator
from .completion.prefetch import TypingPrefetcher
from .completion.provider import CursorLocator, InlineCompletionProvider
from .completion.store import KeyValueStorage, SuggestionStore
from .services.commands import CommandRegistry, register_builtin_commands
from .services.session_storage import SessionStorage, session_storage_path
from .services.settings import Settings
from .utils import logging as logging_utils

__all__ = ["SessionContext", "create_session", "client_settings_from"]

LOGGER = logging.getLogger(__name__)

_CLIENT_FIELDS = (
    "base_url",
    "api_key",
    "chat_model",
    "completion_model",
    "organization",
    "request_timeout",
    "max_retries",
    "retry_min_seconds",
    "retry_max_seconds",
    "default_headers",
    "debug_logging",
)


def client_settings_from(settings: Settings) -> ClientSettings:
    return ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        chat_model=settings.chat_model,
        completion_model=settings.completion_model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=dict(settings.default_headers or {}),
        debug_logging=settings.debug_logging,
    )


@dataclass(slots=True)
class SessionContext:
    """Every engine object for one session, built once and shared.

    Attributes:
        settings: Settings the session was last configured with.
        budget: Request budget shared by completion and chat.
        client: Backend client; replaced when connection settings change.
        backend: Structured completion backend used by the generator.
        store: Suggestion store persisted to ``storage``.
        generator: Recommendation generator.
        provider: Host-facing inline completion provider.
        prefetcher: Edit-driven background generation.
        commands: Host command registry.
    """

    settings: Settings
    budget: ConcurrencyBudget
    client: AIClient
    backend: Backend
    store: SuggestionStore
    storage: KeyValueStorage | None
    generator: RecommendationGenerator
    provider: InlineCompletionProvider
    prefetcher: TypingPrefetcher
    commands: CommandRegistry

    async def apply_settings(self, settings: Settings) -> None:
        """Apply changed settings to the live session."""

        previous = self.settings
        self.settings = settings
        self.budget.reconfigure(settings.request_concurrency)
        self.provider.gate.delay = settings.completion_debounce_ms / 1000
        self.provider.file_pattern = settings.completion_file_pattern
        self.provider.enabled = settings.completion_enabled
        self.prefetcher.gate.delay = settings.typing_debounce_ms / 1000
        self.prefetcher.file_pattern = settings.completion_file_pattern
        self.prefetcher.enabled = settings.completion_enabled
        self.generator.preceding_lines = settings.preceding_lines
        self.generator.include_git_diff = settings.include_git_diff

        if previous.debug_logging != settings.debug_logging:
            logging_utils.set_level(logging.DEBUG if settings.debug_logging else logging.INFO)

        if any(getattr(previous, name) != getattr(settings, name) for name in _CLIENT_FIELDS):
            LOGGER.info("Backend connection settings changed; rebuilding client for %s", settings.base_url)
            old_client = self.client
            self.client = AIClient(client_settings_from(settings), budget=self.budget)
            if isinstance(self.backend, CompletionBackend):
                self.backend.client = self.client
            await old_client.aclose()

    async def aclose(self) -> None:
        self.provider.gate.cancel()
        self.prefetcher.gate.cancel()
        await self.provider.gate.drain()
        await self.prefetcher.gate.drain()
        await self.client.aclose()


def create_session(
    settings: Settings,
    *,
    workspace: Path | str | None = None,
    storage: KeyValueStorage | None = None,
    openai_client: AsyncOpenAI | None = None,
    backend: Backend | None = None,
    cursor_locator: CursorLocator | None = None,
) -> SessionContext:
    """Build a :class:`SessionContext` for ``workspace``.

    ``storage`` defaults to the workspace's JSON session file. ``backend`` and
    ``openai_client`` let callers substitute fakes.
    """

    budget = ConcurrencyBudget(settings.request_concurrency)
    client = AIClient(client_settings_from(settings), client=openai_client, budget=budget)
    if backend is None:
        backend = CompletionBackend(client)
    if storage is None:
        storage = SessionStorage(session_storage_path(workspace))
    store = SuggestionStore(storage=storage)
    generator = RecommendationGenerator(
        backend,
        store,
        preceding_lines=settings.preceding_lines,
        include_git_diff=settings.include_git_diff,
    )
    provider = InlineCompletionProvider(
        generator,
        store,
        delay=settings.completion_debounce_ms / 1000,
        cursor_locator=cursor_locator,
        file_pattern=settings.completion_file_pattern,
        enabled=settings.completion_enabled,
    )
    prefetcher = TypingPrefetcher(
        generator,
        delay=settings.typing_debounce_ms / 1000,
        file_pattern=settings.completion_file_pattern,
        enabled=settings.completion_enabled,
    )
    commands = CommandRegistry()
    register_builtin_commands(commands, store)
    LOGGER.debug(
        "Session created: %s suggestion(s) restored, budget=%s", len(store), budget.max_requests
    )
    return SessionContext(
        settings=settings,
        budget=budget,
        client=client,
        backend=backend,
        store=store,
        storage=storage,
        generator=generator,
        provider=provider,
        prefetcher=prefetcher,
        commands=commands,
    )
