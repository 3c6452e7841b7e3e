"""Helpers that turn an editor position into a :class:`TriggerContext`."""

from __future__ import annotations

import fnmatch
import re
from pathlib import Path, PurePath

from .models import Position, TextDocument, TriggerContext

__all__ = [
    "BOUNDARY_SUFFIXES",
    "DEFAULT_PRECEDING_LINES",
    "line_prefix",
    "trailing_text",
    "is_boundary_prefix",
    "strip_code_fences",
    "matches_file_pattern",
    "preceding_lines",
    "build_trigger_context",
]

DEFAULT_PRECEDING_LINES = 5
BOUNDARY_SUFFIXES: tuple[str, ...] = ("}", ";")

_FENCE_LINE_RE = re.compile(r"```.*\n")
_MATCH_ALL_PATTERNS = frozenset({"", "*", "**", "**/*"})


def line_prefix(document: TextDocument, position: Position) -> str:
    """Text from the start of the line to the cursor, left-trimmed."""

    return document.line_at(position.line)[: position.character].lstrip()


def trailing_text(document: TextDocument, position: Position) -> str:
    """Text from the cursor to the end of the line."""

    return document.line_at(position.line)[position.character :]


def is_boundary_prefix(prefix: str) -> bool:
    """Empty prefixes and statement/block terminators always force regeneration."""

    return prefix == "" or prefix.endswith(BOUNDARY_SUFFIXES)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers, including any info string after them."""

    return _FENCE_LINE_RE.sub("", text).replace("```", "")


def matches_file_pattern(file_name: str, pattern: str | None) -> bool:
    """Whether ``file_name`` is covered by the glob ``pattern``.

    ``**/`` at the start of the pattern also matches files at any depth,
    including bare file names.
    """

    pattern = (pattern or "").strip()
    if pattern in _MATCH_ALL_PATTERNS:
        return True
    path = PurePath(file_name)
    candidates = [pattern]
    if pattern.startswith("**/"):
        candidates.append(pattern[3:])
    return any(
        fnmatch.fnmatchcase(path.as_posix(), candidate) or fnmatch.fnmatchcase(path.name, candidate)
        for candidate in candidates
    )


def preceding_lines(document: TextDocument, position: Position, count: int = DEFAULT_PRECEDING_LINES) -> str:
    start_line = max(0, position.line - max(0, count))
    return document.get_text(start_line, position.line)


def build_trigger_context(
    document: TextDocument,
    position: Position,
    prefix: str,
    *,
    is_line_start: bool | None = None,
    preceding_line_count: int = DEFAULT_PRECEDING_LINES,
    diff_text: str | None = None,
) -> TriggerContext:
    return TriggerContext(
        source_id=document.file_name,
        file_name=Path(document.file_name).name,
        language_id=document.language_id,
        prefix=prefix,
        cursor_line=position.line,
        cursor_column=position.character,
        preceding_lines=preceding_lines(document, position, preceding_line_count),
        diff_text=diff_text or None,
        is_line_start=(prefix == "") if is_line_start is None else is_line_start,
    )
