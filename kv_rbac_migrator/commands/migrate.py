"""Migrate command.

Replicates the Key Vault role assignments of each old principal in the
mapping CSV to its new principal, optionally revoking the old assignments.

Safety Features:
- --what-if makes no create/delete call and logs every action as Simulated
- --confirm asks before every create/delete call (ignored under --what-if)
- A snapshot of every old-principal assignment is written before any change
- Operation and snapshot logs are written even if the run is interrupted
"""

import logging
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from ..config_manager import MigratorConfig, create_config_from_env, setup_logging
from ..exceptions import (
    ConfigurationError,
    MappingInputError,
    SubscriptionDiscoveryError,
)
from ..models.mapping import MappingRow
from ..services.aad_directory_service import AADDirectoryService
from ..services.audit_logger import AuditLogger, ExportPaths
from ..services.azure_control_plane_service import AzureControlPlaneService
from ..services.identity_resolver import IdentityResolver
from ..services.mapping_loader import load_mapping
from ..services.migration_engine import MigrationEngine, MigrationOptions, RunSummary
from .base import async_command, command_context, exit_with_error

logger = logging.getLogger(__name__)
console = Console()


@click.command("migrate")
@click.option(
    "--mapping-csv",
    required=True,
    type=click.Path(dir_okay=False),
    help="CSV with OldPrincipal and NewPrincipal columns",
)
@click.option(
    "--output-path",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for the operation and snapshot logs (default: KVRBAC_OUTPUT_PATH or .)",
)
@click.option(
    "--throttle-ms",
    default=None,
    type=click.IntRange(min=0),
    help="Delay in milliseconds after each create/delete call",
)
@click.option(
    "--include-inherited",
    is_flag=True,
    help="Also replicate assignments inherited from parent scopes (rows may override)",
)
@click.option(
    "--remove-old",
    is_flag=True,
    help="Revoke the old principal's assignment after the new one is added",
)
@click.option(
    "--what-if",
    is_flag=True,
    help="Dry-run: report what would change without changing anything",
)
@click.option(
    "--confirm",
    is_flag=True,
    help="Ask before every create/delete call",
)
@click.pass_context
@async_command
async def migrate_command(
    ctx: click.Context,
    mapping_csv: str,
    output_path: Optional[str],
    throttle_ms: Optional[int],
    include_inherited: bool,
    remove_old: bool,
    what_if: bool,
    confirm: bool,
) -> None:
    """
    Migrate Key Vault RBAC assignments from old to new principals.

    Example:
        kvrbac migrate --mapping-csv mapping.csv --what-if

    Apply and clean up, one prompt per change:
        kvrbac migrate --mapping-csv mapping.csv --remove-old --confirm
    """
    cmd_ctx = command_context(ctx)

    # Unset flags keep the environment defaults
    try:
        config = create_config_from_env(
            mapping_csv=mapping_csv,
            output_path=output_path,
            throttle_ms=throttle_ms,
            include_inherited=include_inherited or None,
            remove_old=remove_old or None,
            what_if=what_if or None,
            confirm=confirm or None,
            log_level=cmd_ctx.log_level,
        )
    except (ConfigurationError, ValueError) as e:
        exit_with_error(str(e))

    setup_logging(config.logging)
    config.log_configuration_summary()

    try:
        rows = load_mapping(config.run.mapping_csv)
    except MappingInputError as e:
        exit_with_error(str(e))

    if config.run.what_if:
        click.echo("DRY RUN MODE - No role assignments will be created or deleted")
        if config.run.confirm:
            click.echo("--confirm is ignored in dry-run mode")

    await run_migration(config, rows)


async def run_migration(
    config: MigratorConfig,
    rows: List[MappingRow],
    engine: Optional[MigrationEngine] = None,
) -> RunSummary:
    """
    Run the engine and write the artifacts.

    A fatal discovery failure exits before any row is processed and writes
    nothing. Any other interruption still exports what was recorded.
    """
    if engine is None:
        control_plane = AzureControlPlaneService()
        directory = AADDirectoryService()
        engine = MigrationEngine(
            control_plane,
            IdentityResolver(directory),
            AuditLogger(),
            MigrationOptions.from_run_config(config.run),
        )

    try:
        summary = await engine.run(rows)
    except SubscriptionDiscoveryError as e:
        exit_with_error(str(e))
    except BaseException:
        paths = engine.audit.export(config.run.output_path)
        click.echo(
            f"Run interrupted; partial logs written to {paths.operations_csv.parent}",
            err=True,
        )
        raise

    paths = engine.audit.export(config.run.output_path)
    print_summary(summary, paths)
    return summary


def print_summary(summary: RunSummary, paths: ExportPaths) -> None:
    """Print run counters and artifact paths."""
    console.print("\n[bold]Migration Summary:[/bold]")
    console.print(
        f"  Rows: {summary.rows_total} total, {summary.rows_processed} processed, "
        f"{summary.rows_skipped} skipped"
    )
    console.print(
        f"  Subscriptions visited: {summary.subscriptions_visited}, "
        f"vault scopes visited: {summary.scopes_visited}, "
        f"snapshot records: {summary.snapshots}"
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Action", style="cyan")
    table.add_column("Status")
    table.add_column("Count", justify="right", style="green")

    for (action, status), count in sorted(summary.status_counts.items()):
        color = "red" if status == "Error" else "yellow" if status == "Simulated" else "green"
        table.add_row(action, f"[{color}]{status}[/{color}]", str(count))

    console.print(table)

    console.print("\n[bold]Logs:[/bold]")
    console.print(f"  Operations (CSV):  [cyan]{paths.operations_csv}[/cyan]")
    console.print(f"  Operations (JSON): [cyan]{paths.operations_json}[/cyan]")
    console.print(f"  Snapshot (CSV):    [cyan]{paths.snapshot_csv}[/cyan]")
