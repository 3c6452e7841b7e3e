"""Workspace-scoped key/value persistence for engine state."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from .settings import SETTINGS_DIR

__all__ = ["SessionStorage", "session_storage_path"]

LOGGER = logging.getLogger(__name__)
_SESSIONS_DIRNAME = "sessions"
_STORAGE_VERSION = 1


def session_storage_path(workspace: Path | str | None = None, *, root: Path | None = None) -> Path:
    """Return the storage file for *workspace* (defaults to the current directory)."""

    resolved = Path(workspace or Path.cwd()).expanduser().resolve()
    digest = hashlib.sha1(str(resolved).encode("utf-8")).hexdigest()[:16]
    base = root or (SETTINGS_DIR / _SESSIONS_DIRNAME)
    return base / f"{resolved.name or 'root'}-{digest}.json"


class SessionStorage:
    """JSON-file backed map of keys to JSON-compatible values.

    Values are cached in memory after the first read; every :meth:`update`
    rewrites the whole file atomically through a temporary sibling.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._values: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def keys(self) -> list[str]:
        return sorted(self._load())

    def update(self, key: str, value: Any) -> None:
        values = self._load()
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value
        self._write(values)

    def _load(self) -> dict[str, Any]:
        if self._values is None:
            payload = self._read_payload()
            entries = payload.get("values")
            self._values = dict(entries) if isinstance(entries, Mapping) else {}
        return self._values

    def _write(self, values: Mapping[str, Any]) -> None:
        body = json.dumps({"version": _STORAGE_VERSION, "values": values}, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)

    def _read_payload(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Session storage %s is not valid JSON: %s", self._path, exc)
            return {}
        if isinstance(data, Mapping):
            return dict(data)
        return {}
