"""Migrate command - gated, incremental application of pending entries."""

from __future__ import annotations

import json

from rich.console import Console

from ..config import StrataConfig
from ..errors import ConfigError, ConsistencyError, LedgerInvalidError, SchemaError
from ..executor import migrate
from ..invoker import load_invoker
from ..status import pending_ids
from ..store import LedgerStore
from ..validation import validate
from ._shared import assets_for, load_project


def run_migrate(
    config: StrataConfig,
    *,
    invoker_spec: str | None = None,
    timeout: float | None = None,
    dry_run: bool = False,
    output_json: bool = False,
) -> int:
    """Apply pending migrations.

    Exit code 0 when every pending entry applied (or nothing was pending),
    1 on any load error, violation, consistency error or migration failure.
    """
    console = Console(stderr=True)
    assets = assets_for(config)

    if dry_run:
        return _dry_run(config, console, output_json=output_json)

    spec = invoker_spec or config.invoker
    if not spec:
        console.print("No invoker configured. Pass --invoker module:attr or set 'invoker' in strata.toml.", style="bold red")
        return 1
    try:
        invoker = load_invoker(spec)
    except ConfigError as exc:
        console.print(str(exc), style="bold red")
        return 1

    store = LedgerStore(config.ledger_path)
    if not store.exists():
        console.print(f"Ledger not found: {config.ledger_path}", style="bold red")
        return 1

    try:
        summary = migrate(
            store,
            invoker,
            asset_exists=assets.exists,
            asset_refs=assets.asset_refs(),
            timeout=timeout if timeout is not None else config.timeout,
            console=console,
            project_root=config.root,
        )
    except SchemaError as exc:
        console.print(f"Schema error: {exc}", style="bold red")
        return 1
    except LedgerInvalidError as exc:
        console.print(f"✗ Refusing to migrate: {exc}", style="bold red")
        for v in exc.result.violations:
            console.print(f"  {v}", style="red")
        return 1
    except ConsistencyError as exc:
        console.print(f"✗ Applied state is inconsistent: {exc}", style="bold red")
        console.print("  The applied record will not be repaired automatically.", style="dim")
        return 1

    if output_json:
        print(json.dumps(summary.to_dict(), indent=2))

    return 0 if summary.success else 1


def _dry_run(config: StrataConfig, console: Console, *, output_json: bool) -> int:
    project = load_project(config, console)
    if project is None:
        return 1

    assets = assets_for(config)
    result = validate(
        project.ledger,
        graph=project.graph,
        asset_exists=assets.exists,
        asset_refs=assets.asset_refs(),
    )
    pending = pending_ids(project.graph, project.record) if result.is_valid else []

    if output_json:
        print(
            json.dumps(
                {
                    "valid": result.is_valid,
                    "violations": [v.to_dict() for v in result.violations],
                    "pending": pending,
                },
                indent=2,
            )
        )
    else:
        for v in result.violations:
            console.print(f"  {v}", style="red")
        if result.is_valid:
            if pending:
                console.print("Would apply, in order:", style="dim")
                for entry_id in pending:
                    print(entry_id)
            else:
                console.print("Nothing to apply.", style="dim")

    return 0 if result.is_valid else 1
