"""CLI entrypoint for strata."""

import sys
from pathlib import Path

import click

from . import __version__
from .config import find_project_root, load_config
from .errors import ConfigError


@click.group()
@click.version_option(__version__, prog_name="strata")
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Project root (defaults to the nearest directory with strata.toml)",
)
@click.pass_context
def cli(ctx: click.Context, project: Path | None) -> None:
    """strata - dependency-ordered migration ledger.

    Validate the ledger, inspect its application order, and apply pending
    migrations exactly once.
    """
    ctx.ensure_object(dict)
    if project is None:
        project = find_project_root(Path.cwd()) or Path.cwd()

    if not project.exists() or not project.is_dir():
        raise click.BadParameter(f"Directory '{project}' does not exist.", param_hint="--project / -p")

    try:
        ctx.obj["config"] = load_config(project)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON",
)
@click.option(
    "--against",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Previously committed ledger; fail if committed entries were edited, deleted or reordered",
)
@click.option(
    "--no-assets",
    is_flag=True,
    help="Skip asset existence and orphan checks",
)
@click.pass_context
def validate(ctx: click.Context, output_json: bool, against: Path | None, no_assets: bool) -> None:
    """Check the ledger for violations.

    Reports every violation at once. Exits non-zero if any are found, so the
    same command serves as a pre-submission gate:

        strata validate --against .strata/ledger.committed.toml
    """
    from .commands.validate_cmd import run_validate

    exit_code = run_validate(ctx.obj["config"], output_json, against, check_assets=not no_assets)
    sys.exit(exit_code)


@cli.command()
@click.argument("rule_id")
def explain(rule_id: str) -> None:
    """Explain a validation rule (e.g. strata explain remove-integrity)."""
    from .commands.validate_cmd import run_explain

    sys.exit(run_explain(rule_id))


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output status as JSON")
@click.pass_context
def status(ctx: click.Context, output_json: bool) -> None:
    """Show applied and pending migrations and the tag snapshot."""
    from .commands.status_cmd import run_status

    sys.exit(run_status(ctx.obj["config"], output_json=output_json))


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json", "dot"]),
    default="text",
    help="Output format",
)
@click.pass_context
def order(ctx: click.Context, fmt: str) -> None:
    """Print the application order (or the dependency graph as DOT)."""
    from .commands.order_cmd import run_order

    sys.exit(run_order(ctx.obj["config"], fmt=fmt))


@cli.command()
@click.option(
    "--invoker",
    "invoker_spec",
    type=str,
    default=None,
    metavar="MODULE:ATTR",
    help="Mutation invoker to apply entries with (overrides strata.toml)",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-migration time bound in seconds; exceeding it counts as a failure",
)
@click.option("--dry-run", is_flag=True, help="Validate and list pending migrations without applying")
@click.option("--json", "output_json", is_flag=True, help="Output the run summary as JSON")
@click.pass_context
def migrate(
    ctx: click.Context,
    invoker_spec: str | None,
    timeout: float | None,
    dry_run: bool,
    output_json: bool,
) -> None:
    """Apply pending migrations in dependency order.

    Stops at the first failing migration. Applied migrations are recorded
    one by one, so rerunning picks up where the last run stopped.
    """
    from .commands.migrate_cmd import run_migrate

    exit_code = run_migrate(
        ctx.obj["config"],
        invoker_spec=invoker_spec,
        timeout=timeout,
        dry_run=dry_run,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--last", "last_n", type=int, default=None, help="Only show the last N entries")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx: click.Context, last_n: int | None, output_json: bool) -> None:
    """Show the audit log of applied and failed migrations."""
    from .commands.status_cmd import run_history

    sys.exit(run_history(ctx.obj["config"], last_n=last_n, output_json=output_json))


if __name__ == "__main__":
    cli()
