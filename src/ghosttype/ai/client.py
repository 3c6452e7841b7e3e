"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, MutableMapping, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..completion.budget import ConcurrencyBudget
from ..errors import BackendUnavailableError
from .schemas import decode_payload, response_format, validate_payload

LOGGER = logging.getLogger(__name__)

__all__ = ["AIClient", "ClientSettings"]


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    chat_model: str
    completion_model: str
    organization: str | None = None
    request_timeout: float | None = None
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Async client for structured completions and streamed chat.

    Every request holds one slot of the shared :class:`ConcurrencyBudget` for
    its whole duration. Structured completions are single-shot; only the
    chat stream retries transient failures.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        budget: ConcurrencyBudget | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._budget = budget or ConcurrencyBudget()
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def budget(self) -> ConcurrencyBudget:
        return self._budget

    async def generate_json(
        self,
        prompt: str,
        schema: Mapping[str, Any],
        *,
        name: str,
        wait: bool = True,
    ) -> Mapping[str, Any]:
        """Run one non-streaming completion and return its validated JSON payload.

        Raises:
            BudgetExceededError: ``wait`` is false and no request slot is free.
            BackendUnavailableError: the endpoint could not be reached or failed.
            MalformedResponseError: the reply is not JSON matching ``schema``.
        """

        payload: Dict[str, Any] = {
            "model": self._settings.completion_model,
            "messages": [{"role": "user", "content": prompt}],
            "response_format": response_format(name, schema),
            "stream": False,
        }
        LOGGER.debug("Requesting %s via %s", name, self._settings.completion_model)
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        async with self._budget.slot(wait=wait):
            try:
                response = await self._client.chat.completions.create(**payload)
            except (APIError, httpx.HTTPError) as exc:
                raise BackendUnavailableError(
                    f"Failed to connect to the completion backend: {exc}",
                    operation=name,
                    base_url=self._settings.base_url,
                ) from exc

        content = _first_message_content(response)
        decoded = decode_payload(content, operation=name)
        return validate_payload(decoded, schema, operation=name)

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = 0.2,
        **extra_params: Any,
    ) -> AsyncIterator[str]:
        """Stream assistant text deltas for the provided chat messages."""

        payload: Dict[str, Any] = {
            "model": self._settings.chat_model,
            "messages": self._coerce_messages(messages),
            "stream": True,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if extra_params:
            payload.update(extra_params)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            self._settings.chat_model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        async with self._budget.slot(wait=True):
            async for attempt in self._retrying():
                with attempt:
                    stream = await self._client.chat.completions.create(**payload)
                    async for chunk in stream:
                        delta = _chunk_text(chunk)
                        if delta:
                            yield delta
                    break

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return a list of model identifiers served by the endpoint."""

        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)

        async with self._models_lock:
            if self._models_cache is not None and not force_refresh:
                return list(self._models_cache)

            try:
                response = await self._client.models.list()
            except (APIError, httpx.HTTPError) as exc:
                raise BackendUnavailableError(
                    f"Failed to list models: {exc}",
                    operation="list_models",
                    base_url=self._settings.base_url,
                ) from exc
            models = [item.id for item in response.data if getattr(item, "id", None)]
            self._models_cache = models
            return list(models)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key or "ollama",
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIStatusError,
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _coerce_messages(
        self, messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam]
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = []
        for message in messages:
            if isinstance(message, MutableMapping):
                normalized.append(cast(ChatCompletionMessageParam, dict(message)))
            else:
                try:
                    normalized.append(cast(ChatCompletionMessageParam, dict(message)))
                except TypeError as exc:
                    raise TypeError("Messages must be mapping-like objects") from exc
        if not normalized:
            raise ValueError("At least one message is required to start a chat")
        return normalized

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _first_message_content(response: Any) -> str | None:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


def _chunk_text(chunk: Any) -> str | None:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return None
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None)
