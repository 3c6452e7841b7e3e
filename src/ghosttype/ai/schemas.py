"""JSON schemas for structured backend responses and their validation."""

from __future__ import annotations

import json
from typing import Any, Mapping

from jsonschema import Draft7Validator

from ..errors import MalformedResponseError

__all__ = [
    "CODE_COMPLETION_SCHEMA",
    "MERGE_CODES_SCHEMA",
    "RERANK_SCHEMA",
    "decode_payload",
    "validate_payload",
    "response_format",
]

CODE_COMPLETION_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "language": {"type": "string"},
        "suggestions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "code": {"type": "string"},
                    "priority": {"type": "number"},
                },
                "required": ["code", "priority"],
            },
        },
    },
    "required": ["language", "suggestions"],
}

MERGE_CODES_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "language": {"type": "string"},
        "mergedCode": {"type": "string"},
    },
    "required": ["language", "mergedCode"],
}

RERANK_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "code": {"type": "string"},
                    "weight": {"type": "number"},
                },
                "required": ["code", "weight"],
            },
        },
    },
    "required": ["suggestions"],
}

_VALIDATORS: dict[int, Draft7Validator] = {}


def response_format(name: str, schema: Mapping[str, Any]) -> dict[str, Any]:
    """Build an OpenAI ``response_format`` requesting output that matches *schema*."""

    return {
        "type": "json_schema",
        "json_schema": {"name": name, "schema": dict(schema)},
    }


def decode_payload(raw: str | None, *, operation: str) -> Any:
    if raw is None or not raw.strip():
        raise MalformedResponseError("backend returned an empty response", operation=operation)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            f"backend response is not valid JSON: {exc.msg}", operation=operation, payload=raw
        ) from exc


def validate_payload(payload: Any, schema: Mapping[str, Any], *, operation: str) -> Mapping[str, Any]:
    """Return *payload* when it satisfies *schema*, else raise :class:`MalformedResponseError`."""

    validator = _VALIDATORS.get(id(schema))
    if validator is None:
        validator = Draft7Validator(schema)
        _VALIDATORS[id(schema)] = validator
    errors = sorted(validator.iter_errors(payload), key=lambda error: list(error.path))
    if errors:
        first = errors[0]
        location = "/".join(str(part) for part in first.path) or "<root>"
        raise MalformedResponseError(
            f"backend response failed validation at {location}: {first.message}",
            operation=operation,
            payload=payload,
        )
    return payload
