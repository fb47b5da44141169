"""Key Vault RBAC Migrator command-line interface."""

import click
from dotenv import load_dotenv

from . import __version__
from .commands.migrate import migrate_command

load_dotenv()


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
@click.version_option(__version__, prog_name="kvrbac")
@click.pass_context
def main(ctx: click.Context, log_level: str, debug: bool) -> None:
    """Migrate Azure Key Vault RBAC assignments between principals."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    ctx.obj["debug"] = debug


main.add_command(migrate_command)


if __name__ == "__main__":
    main()
