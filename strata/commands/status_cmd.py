"""Status and history commands."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from ..audit_log import format_audit_entry, read_audit_log
from ..config import StrataConfig
from ..status import project_status
from ._shared import load_project


def run_status(config: StrataConfig, *, output_json: bool = False) -> int:
    """Show applied, pending and blocked entries plus the tag snapshot."""
    err = Console(stderr=True)
    project = load_project(config, err)
    if project is None:
        return 1

    report = project_status(project.ledger, project.graph, project.record)

    if output_json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return 0

    console = Console()
    table = Table(title="Migrations")
    table.add_column("#", justify="right", style="dim")
    table.add_column("entry", style="cyan", no_wrap=True)
    table.add_column("kind", style="magenta")
    table.add_column("state")
    table.add_column("description")

    rows = (
        [(i, "applied", "green") for i in report.applied_ids]
        + [(i, "pending", "yellow") for i in report.pending_ids]
        + [(i, "blocked", "red") for i in report.blocked_ids]
    )
    for n, (entry_id, state, style) in enumerate(rows, start=1):
        entry = project.ledger.get(entry_id)
        table.add_row(
            str(n),
            entry_id,
            entry.kind.value if entry else "?",
            f"[{style}]{state}[/]",
            entry.description if entry else "",
        )
    console.print(table)

    if report.tags:
        tags = Table(title="Tags")
        tags.add_column("tag", style="cyan")
        tags.add_column("produced by", style="dim")
        tags.add_column("payload")
        for name in sorted(report.tags):
            tags.add_row(name, report.producers.get(name, ""), json.dumps(report.tags[name]))
        console.print(tags)

    if report.up_to_date:
        err.print(f"✓ Up to date (last applied: {report.last_applied or '-'})", style="green")
    else:
        err.print(
            f"{len(report.pending_ids)} pending, {len(report.blocked_ids)} blocked",
            style="yellow",
        )
    return 0


def run_history(config: StrataConfig, *, last_n: int | None = None, output_json: bool = False) -> int:
    """Print the audit log of past runs."""
    entries = read_audit_log(config.root, last_n=last_n)

    if output_json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    if not entries:
        Console(stderr=True).print("No runs recorded.", style="dim")
        return 0

    for entry in entries:
        print(format_audit_entry(entry))
    return 0
