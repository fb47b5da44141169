"""CLI commands."""

from .base import CommandContext, async_command, command_context, exit_with_error
from .migrate import migrate_command

__all__ = [
    "CommandContext",
    "async_command",
    "command_context",
    "exit_with_error",
    "migrate_command",
]
