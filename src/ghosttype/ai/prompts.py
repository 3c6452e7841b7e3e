"""Prompt templates for the completion, merge and re-rank backend calls.

Every template uses XML-style tags so local models can locate each part of
the context without relying on markdown formatting.
"""

from __future__ import annotations

import json
from typing import Iterable

from ..completion.models import TriggerContext

__all__ = ["code_completion_prompt", "merge_codes_prompt", "rerank_prompt"]


def code_completion_prompt(context: TriggerContext) -> str:
    """Ask for one or more continuations that start with the typed prefix."""

    diff_section = f"<git-diff>{context.diff_text}</git-diff>\n" if context.diff_text else ""
    return f"""<context>
<language>{context.language_id}</language>
<file-name>{context.file_name}</file-name>
<prefix>{context.prefix}</prefix>
{diff_section}<previous-lines>{context.preceding_lines}</previous-lines>
</context>

<task>
You are the backend for an editor's inline code completion system.
Your response is shown to the developer as ghost text at the cursor.
Complete the rest of the missing forward-only code.
Take into account the previous lines, the 'git diff' result and the file name, and suggest the code that is most likely to come next or that accomplishes what the developer wants to achieve.
The code must be valid code in the language and start with the prefix.

If you can think of multiple ideas, submit multiple proposals.
Give each proposal a priority (a higher number takes priority, default: 1).
</task>

<example>
<language>go</language>
<current-line>rootC</current-line>
<expected-response>rootCmd.PersistentFlags().StringVar(&o.SnapshotExtension, "snapshot-extension", ".yaml", "file extension of snapshot files")</expected-response>
</example>
"""


def merge_codes_prompt(prefix: str, candidate: str) -> str:
    return f"""<task>
Concatenate the two pieces of code logically.
The first one is a prefix but it might not be perfect.
</task>
<first>{prefix}</first>
<second>{candidate}</second>"""


def rerank_prompt(suggestions: Iterable[tuple[str, float]], context: TriggerContext) -> str:
    """Ask the backend to reorder and re-weight the stored suggestions."""

    listing = json.dumps(
        [{"code": code, "weight": weight} for code, weight in suggestions],
        ensure_ascii=False,
    )
    return f"""<context>
<language>{context.language_id}</language>
<file-name>{context.file_name}</file-name>
<previous-lines>{context.preceding_lines}</previous-lines>
</context>

<task>
You are the backend for an editor's inline code completion system.
Your response is shown to the developer as ghost text at the cursor.

Order the suggestion list and adjust the weight of each suggestion by how likely it is to be used.
A higher weight means a stronger recommendation for the developer.
</task>

<suggestion-list>
{listing}
</suggestion-list>
"""
