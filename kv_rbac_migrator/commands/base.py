"""Base command infrastructure and shared utilities."""

import asyncio
import functools
import sys
from typing import Any, Callable, Coroutine, NoReturn

import click


class CommandContext:
    """Shared context for command execution."""

    def __init__(
        self,
        ctx: click.Context,
        debug: bool = False,
        log_level: str = "INFO",
    ):
        self.click_ctx = ctx
        self.debug = debug
        self.log_level = "DEBUG" if debug else log_level


def command_context(ctx: click.Context) -> CommandContext:
    """Create CommandContext from click context."""
    obj = ctx.obj or {}
    return CommandContext(
        ctx=ctx,
        debug=obj.get("debug", False),
        log_level=obj.get("log_level", "INFO"),
    )


def exit_with_error(message: str, code: int = 1) -> NoReturn:
    """Exit with error message."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def async_command(f: Callable[..., Coroutine[Any, Any, Any]]) -> Callable[..., Any]:
    """Decorator to make Click commands async-compatible."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(f(*args, **kwargs))

    return wrapper
