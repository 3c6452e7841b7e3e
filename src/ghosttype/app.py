"""Command-line entry point for the GhostType completion engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from . import __version__
from .completion.models import DocumentSnapshot, Position
from .errors import GhostTypeError
from .runtime import SessionContext, create_session
from .services.commands import CLEAR_COMPLETION_CACHE
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the CLI; debug mode also echoes records to stderr."""

    level = logging.DEBUG if debug else logging.INFO
    log_dir = os.environ.get("GHOSTTYPE_LOG_DIR") or None
    logging_utils.setup_logging(level, log_dir=log_dir, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `ghosttype` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("GHOSTTYPE_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("GHOSTTYPE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command is None:
        print("No command given; see --help.", file=sys.stderr)
        return 2

    return asyncio.run(_run(args, settings))


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    session = create_session(settings, workspace=args.workspace)
    try:
        return await _dispatch(args, session)
    except GhostTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        await session.aclose()


async def _dispatch(args: argparse.Namespace, session: SessionContext) -> int:
    if args.command == "clear-cache":
        await session.commands.execute(CLEAR_COMPLETION_CACHE)
        print("Completion cache cleared.")
        return 0

    if args.command == "models":
        for model in await session.client.list_models():
            print(model)
        return 0

    try:
        document = DocumentSnapshot.from_path(args.file)
    except OSError as exc:
        print(f"error: cannot read {args.file}: {exc}", file=sys.stderr)
        return 1
    position = _resolve_position(document, args.line, getattr(args, "column", None))

    if args.command == "prefetch":
        prefix = document.line_at(position.line)
        updated = await session.generator.generate(document, position, prefix, wait=False)
        print(f"{len(session.store.lookup(document.file_name, ''))} suggestion(s) stored" if updated else "No update")
        return 0

    items = await session.provider.provide_inline_completion_items(document, position)
    if not items:
        print("No suggestions.", file=sys.stderr)
        return 0
    if args.json:
        payload = [
            {
                "insert_text": item.insert_text,
                "range": asdict(item.range) if item.range else None,
                "command": item.command.command if item.command else None,
            }
            for item in items
        ]
        json.dump(payload, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        for item in items:
            print(item.insert_text)
    return 0


def _resolve_position(document: DocumentSnapshot, line: int | None, column: int | None) -> Position:
    """Translate 1-based CLI coordinates; missing values point at the end of the document/line."""

    line_index = (line - 1) if line else document.line_count - 1
    line_index = max(0, min(line_index, document.line_count - 1))
    text = document.line_at(line_index)
    character = (column - 1) if column else len(text)
    return Position(line_index, max(0, min(character, len(text))))


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ghosttype",
        description="Inline code completion backed by a local language model.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.ghosttype/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--workspace",
        metavar="DIR",
        help="Workspace whose session storage holds the suggestion cache (default: current directory).",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    complete = commands.add_parser("complete", help="Print inline completions for a file position.")
    complete.add_argument("file", type=Path)
    complete.add_argument("--line", type=int, help="1-based line (default: last line).")
    complete.add_argument("--column", type=int, help="1-based column (default: end of line).")
    complete.add_argument("--json", action="store_true", help="Emit items with their ranges as JSON.")

    prefetch = commands.add_parser("prefetch", help="Warm the suggestion cache for a line.")
    prefetch.add_argument("file", type=Path)
    prefetch.add_argument("--line", type=int, help="1-based line (default: last line).")

    commands.add_parser("clear-cache", help="Drop every cached suggestion for the workspace.")
    commands.add_parser("models", help="List models served by the backend.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target, optional = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if optional and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    return normalized


def _resolve_annotation(annotation: Any) -> tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is None:
        return annotation, False
    if origin in {list, dict}:
        return origin, False
    args = get_args(annotation)
    concrete = [arg for arg in args if arg is not type(None)]
    return (concrete[0] if concrete else origin), len(concrete) != len(args)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(payload.get("api_key") or "")
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.name,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("GHOSTTYPE_"))
