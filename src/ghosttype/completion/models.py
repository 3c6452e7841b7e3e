"""Value types exchanged between the host editor and the completion engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

__all__ = [
    "Position",
    "Range",
    "Command",
    "InlineCompletionItem",
    "Suggestion",
    "TriggerContext",
    "CompletionCandidate",
    "MergeResult",
    "RankedSuggestion",
    "TextDocument",
    "DocumentSnapshot",
    "CancellationToken",
    "CancellationSource",
    "TextChange",
    "DocumentChangeEvent",
]


@dataclass(slots=True, frozen=True)
class Position:
    """Zero-based line/character location inside a document."""

    line: int
    character: int

    def translate(self, line_delta: int = 0, character_delta: int = 0) -> "Position":
        return Position(self.line + line_delta, max(0, self.character + character_delta))

    def with_(self, line: int | None = None, character: int | None = None) -> "Position":
        return Position(
            self.line if line is None else line,
            self.character if character is None else character,
        )


@dataclass(slots=True, frozen=True)
class Range:
    start: Position
    end: Position


@dataclass(slots=True, frozen=True)
class Command:
    """Host command attached to a rendered completion."""

    title: str
    command: str
    arguments: tuple[Any, ...] = ()


@dataclass(slots=True)
class InlineCompletionItem:
    """Ghost-text item handed back to the host renderer."""

    insert_text: str
    range: Range | None = None
    command: Command | None = None


@dataclass(slots=True)
class Suggestion:
    """A stored candidate continuation for one source document.

    Attributes:
        source_id: Identity of the originating document (its file path).
        completion_text: Full candidate line, not a diff against the prefix.
        weight: Rank assigned by the engine and the backend; higher renders first.
        is_line_start: True when generated at a boundary trigger.
    """

    source_id: str
    completion_text: str
    weight: float = 1.0
    is_line_start: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "completion_text": self.completion_text,
            "weight": self.weight,
            "is_line_start": self.is_line_start,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Suggestion":
        source_id = payload.get("source_id")
        text = payload.get("completion_text")
        if not isinstance(source_id, str) or not isinstance(text, str):
            raise ValueError("Suggestion payload requires 'source_id' and 'completion_text' strings")
        weight = payload.get("weight", 1)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            raise ValueError(f"Suggestion weight must be a number, got {weight!r}")
        return cls(
            source_id=source_id,
            completion_text=text,
            weight=float(weight),
            is_line_start=bool(payload.get("is_line_start", False)),
        )


@dataclass(slots=True, frozen=True)
class TriggerContext:
    """Local context gathered for one generation request."""

    source_id: str
    file_name: str
    language_id: str
    prefix: str
    cursor_line: int
    cursor_column: int
    preceding_lines: str = ""
    diff_text: str | None = None
    is_line_start: bool = False


@dataclass(slots=True, frozen=True)
class CompletionCandidate:
    code: str
    priority: float = 1.0


@dataclass(slots=True, frozen=True)
class MergeResult:
    merged_code: str
    language: str = ""


@dataclass(slots=True, frozen=True)
class RankedSuggestion:
    code: str
    weight: float


class TextDocument(Protocol):
    """Read-only view of an editor document."""

    @property
    def file_name(self) -> str: ...

    @property
    def language_id(self) -> str: ...

    @property
    def line_count(self) -> int: ...

    def line_at(self, line: int) -> str:
        """Return the text of ``line`` without its line terminator."""
        ...

    def get_text(self, start_line: int, end_line: int) -> str:
        """Return lines ``[start_line, end_line)`` joined with newlines, each newline-terminated."""
        ...


class CancellationToken(Protocol):
    @property
    def is_cancellation_requested(self) -> bool: ...


_LANGUAGE_BY_SUFFIX: Mapping[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".sh": "shellscript",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
}


@dataclass(slots=True)
class DocumentSnapshot:
    """In-memory :class:`TextDocument` used by the CLI and by tests."""

    file_name: str
    text: str
    language_id: str = ""
    _lines: list[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lines = self.text.split("\n")
        if not self.language_id:
            self.language_id = _LANGUAGE_BY_SUFFIX.get(Path(self.file_name).suffix.lower(), "plaintext")

    @classmethod
    def from_path(cls, path: Path | str, *, language_id: str = "") -> "DocumentSnapshot":
        target = Path(path).expanduser()
        return cls(str(target.resolve()), target.read_text(encoding="utf-8"), language_id)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line_at(self, line: int) -> str:
        if line < 0 or line >= len(self._lines):
            raise IndexError(f"line {line} is outside the document (0..{len(self._lines) - 1})")
        return self._lines[line].rstrip("\r")

    def get_text(self, start_line: int, end_line: int) -> str:
        start = max(0, start_line)
        end = min(len(self._lines), end_line)
        return "".join(f"{self._lines[index]}\n" for index in range(start, end))

    def apply(self, position: Position, text: str) -> "DocumentSnapshot":
        """Return a copy with ``text`` inserted at ``position``."""

        lines = list(self._lines)
        current = lines[position.line]
        lines[position.line] = current[: position.character] + text + current[position.character :]
        return replace(self, text="\n".join(lines))


@dataclass(slots=True)
class CancellationSource:
    """Minimal cancellation token implementation."""

    cancelled: bool = False

    @property
    def is_cancellation_requested(self) -> bool:
        return self.cancelled

    def cancel(self) -> None:
        self.cancelled = True


@dataclass(slots=True, frozen=True)
class TextChange:
    """One content change reported by the host."""

    text: str
    range_length: int = 0


@dataclass(slots=True, frozen=True)
class DocumentChangeEvent:
    document: TextDocument
    changes: Sequence[TextChange]
    cursor: Position
