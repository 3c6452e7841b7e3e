"""Command registry for host-invokable engine actions.

Rendered completion items carry a command identifier; the host calls
:meth:`CommandRegistry.execute` with it when the user accepts the item.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from ..errors import GhostTypeError

if TYPE_CHECKING:
    from ..completion.store import SuggestionStore

__all__ = [
    "CLEAR_COMPLETION_CACHE",
    "CommandRegistry",
    "CommandRegistration",
    "DuplicateCommandError",
    "CommandNotFoundError",
    "register_builtin_commands",
]

LOGGER = logging.getLogger(__name__)

CLEAR_COMPLETION_CACHE = "ghosttype.clearCompletionCache"


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateCommandError(GhostTypeError):
    """Raised when a command identifier is registered twice."""

    def __init__(self, command_id: str) -> None:
        self.command_id = command_id
        super().__init__(f"Command '{command_id}' is already registered")


class CommandNotFoundError(GhostTypeError):
    def __init__(self, command_id: str) -> None:
        self.command_id = command_id
        super().__init__(f"Command '{command_id}' not found")


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class CommandRegistration:
    command_id: str
    title: str
    handler: Callable[..., Any]


class CommandRegistry:
    """Map of command identifiers to sync or async callables.

    Example:
        registry = CommandRegistry()
        registry.register("ghosttype.clearCompletionCache", store.clear, title="Clear cache")
        await registry.execute("ghosttype.clearCompletionCache")
    """

    def __init__(self) -> None:
        self._commands: dict[str, CommandRegistration] = {}

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def register(
        self,
        command_id: str,
        handler: Callable[..., Any],
        *,
        title: str = "",
        allow_override: bool = False,
    ) -> CommandRegistration:
        if command_id in self._commands and not allow_override:
            raise DuplicateCommandError(command_id)
        registration = CommandRegistration(command_id=command_id, title=title or command_id, handler=handler)
        self._commands[command_id] = registration
        LOGGER.debug("Registered command: %s", command_id)
        return registration

    def unregister(self, command_id: str) -> None:
        self._commands.pop(command_id, None)

    def get(self, command_id: str) -> CommandRegistration:
        try:
            return self._commands[command_id]
        except KeyError:
            raise CommandNotFoundError(command_id) from None

    def list_commands(self) -> list[str]:
        return sorted(self._commands)

    async def execute(self, command_id: str, *args: Any) -> Any:
        """Run the command, awaiting its result when the handler is async."""

        registration = self.get(command_id)
        LOGGER.debug("Executing command: %s", command_id)
        result = registration.handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result


def register_builtin_commands(registry: CommandRegistry, store: "SuggestionStore") -> None:
    """Register the commands every session exposes."""

    registry.register(CLEAR_COMPLETION_CACHE, store.clear, title="Clear completion cache")
