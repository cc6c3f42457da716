"""Backend: command runtime, action handlers and the HTTP/WebSocket API."""

from .actions import BUILTIN_ACTIONS
from .runtime import CommandRuntime

__all__ = ["BUILTIN_ACTIONS", "CommandRuntime"]
