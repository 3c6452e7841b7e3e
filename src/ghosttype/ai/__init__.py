"""Language-model access: client, prompts, schemas and the completion backend."""

from .backend import Backend, CompletionBackend
from .client import AIClient, ClientSettings

__all__ = ["AIClient", "Backend", "ClientSettings", "CompletionBackend"]
