"""Service layer: settings, session storage, git access and host commands."""

from .commands import CLEAR_COMPLETION_CACHE, CommandRegistry
from .session_storage import SessionStorage, session_storage_path
from .settings import Settings, SettingsStore

__all__ = [
    "CLEAR_COMPLETION_CACHE",
    "CommandRegistry",
    "SessionStorage",
    "Settings",
    "SettingsStore",
    "session_storage_path",
]
