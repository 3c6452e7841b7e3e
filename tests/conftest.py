"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from ghosttype.completion.models import DocumentSnapshot
from ghosttype.completion.store import SuggestionStore

from tests.helpers import FakeBackend, MemoryStorage


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep developer GHOSTTYPE_* variables and the home log directory out of tests."""

    for name in list(os.environ):
        if name.startswith("GHOSTTYPE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GHOSTTYPE_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> SuggestionStore:
    return SuggestionStore(storage=storage)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def subtract_document() -> DocumentSnapshot:
    return DocumentSnapshot(
        "/work/src/calc.ts",
        "export function sub(a: number, b: number) {\n  const sub \n  return sub;\n}\n",
    )
