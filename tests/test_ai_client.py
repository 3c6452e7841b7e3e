"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

import json
import logging
from typing import cast

import httpx
import pytest
from openai import APIConnectionError, AsyncOpenAI

from ghosttype.ai.client import AIClient, ClientSettings
from ghosttype.ai.schemas import MERGE_CODES_SCHEMA
from ghosttype.completion.budget import ConcurrencyBudget
from ghosttype.errors import BackendUnavailableError, BudgetExceededError, MalformedResponseError

from tests.helpers import make_openai

_MERGED = json.dumps({"language": "typescript", "mergedCode": "const sub = b - a;"})


def _settings(**overrides) -> ClientSettings:
    values = dict(
        base_url="http://localhost:11434/v1",
        api_key="",
        chat_model="llama3.1",
        completion_model="qwen2.5-coder",
        max_retries=1,
    )
    values.update(overrides)
    return ClientSettings(**values)


def _client(fake, *, budget: ConcurrencyBudget | None = None, **overrides) -> AIClient:
    return AIClient(_settings(**overrides), client=cast(AsyncOpenAI, fake), budget=budget)


@pytest.mark.asyncio
async def test_generate_json_sends_structured_request() -> None:
    fake = make_openai([_MERGED])
    client = _client(fake)

    payload = await client.generate_json("merge these", MERGE_CODES_SCHEMA, name="merge_codes")

    assert payload["mergedCode"] == "const sub = b - a;"
    call = fake.chat.completions.calls[0]
    assert call["model"] == "qwen2.5-coder"
    assert call["stream"] is False
    assert call["messages"] == [{"role": "user", "content": "merge these"}]
    assert call["response_format"]["json_schema"]["name"] == "merge_codes"


@pytest.mark.asyncio
async def test_generate_json_releases_budget_slot() -> None:
    budget = ConcurrencyBudget(1)
    client = _client(make_openai([_MERGED]), budget=budget)

    await client.generate_json("p", MERGE_CODES_SCHEMA, name="merge_codes")

    assert budget.available == 1


@pytest.mark.asyncio
async def test_generate_json_without_wait_raises_when_budget_exhausted() -> None:
    budget = ConcurrencyBudget(1)
    budget.try_acquire()
    fake = make_openai([_MERGED])
    client = _client(fake, budget=budget)

    with pytest.raises(BudgetExceededError):
        await client.generate_json("p", MERGE_CODES_SCHEMA, name="merge_codes", wait=False)

    assert fake.chat.completions.calls == []


@pytest.mark.asyncio
async def test_connection_failure_is_wrapped_with_url() -> None:
    fake = make_openai()
    fake.chat.completions.error = APIConnectionError(
        request=httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
    )
    budget = ConcurrencyBudget(1)
    client = _client(fake, budget=budget)

    with pytest.raises(BackendUnavailableError) as excinfo:
        await client.generate_json("p", MERGE_CODES_SCHEMA, name="merge_codes")

    assert "URL=http://localhost:11434/v1" in str(excinfo.value)
    assert excinfo.value.operation == "merge_codes"
    assert budget.available == 1


@pytest.mark.asyncio
async def test_httpx_failure_is_wrapped() -> None:
    fake = make_openai()
    fake.chat.completions.error = httpx.ConnectError("refused")
    client = _client(fake)

    with pytest.raises(BackendUnavailableError, match="refused"):
        await client.generate_json("p", MERGE_CODES_SCHEMA, name="merge_codes")


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "not json", json.dumps({"language": "ts"})])
async def test_malformed_content_raises(content: str) -> None:
    client = _client(make_openai([content]))

    with pytest.raises(MalformedResponseError):
        await client.generate_json("p", MERGE_CODES_SCHEMA, name="merge_codes")


@pytest.mark.asyncio
async def test_debug_logging_dumps_prompt_payload(caplog: pytest.LogCaptureFixture) -> None:
    client = _client(make_openai([_MERGED]), debug_logging=True)

    with caplog.at_level(logging.DEBUG, logger="ghosttype.ai.client"):
        await client.generate_json("show me", MERGE_CODES_SCHEMA, name="merge_codes")

    assert "AI prompt payload" in caplog.text
    assert "show me" in caplog.text


@pytest.mark.asyncio
async def test_stream_chat_yields_text_deltas() -> None:
    fake = make_openai(stream_chunks=["Hel", "", "lo"])
    budget = ConcurrencyBudget(2)
    client = _client(fake, budget=budget)

    chunks = [chunk async for chunk in client.stream_chat([{"role": "user", "content": "hi"}])]

    assert chunks == ["Hel", "lo"]
    call = fake.chat.completions.calls[0]
    assert call["model"] == "llama3.1"
    assert call["stream"] is True
    assert budget.available == 2


@pytest.mark.asyncio
async def test_stream_chat_requires_messages() -> None:
    client = _client(make_openai())

    with pytest.raises(ValueError):
        async for _ in client.stream_chat([]):
            pass


@pytest.mark.asyncio
async def test_list_models_caches_results() -> None:
    fake = make_openai(models=["qwen2.5-coder", "llama3.1"])
    client = _client(fake)

    first = await client.list_models()
    second = await client.list_models()

    assert first == ["qwen2.5-coder", "llama3.1"]
    assert second == first
    assert fake.models.calls == 1


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    fake = make_openai()
    client = _client(fake)

    await client.aclose()

    assert fake.closed == [True]
