"""Validate command implementation."""

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import StrataConfig
from ..errors import SchemaError
from ..store import load_ledger
from ..validation import RULES, ValidationResult, Violation, validate
from ._shared import assets_for, load_project


def run_validate(
    config: StrataConfig,
    output_json: bool = False,
    against: Path | None = None,
    check_assets: bool = True,
) -> int:
    """Run the validation engine over the project ledger.

    Used interactively and as the pre-submission gate; both get the same rules.

    Args:
        config: Project configuration
        output_json: Output results as JSON instead of human-readable
        against: Previously committed ledger to check append-only discipline against
        check_assets: Check asset sources and orphans against the filesystem

    Returns:
        Exit code (0 = valid, 1 = violations or load failure)
    """
    console = Console(stderr=True)

    project = load_project(config, console)
    if project is None:
        return 1

    previous = None
    if against is not None:
        try:
            previous, _ = load_ledger(against)
        except (OSError, SchemaError) as exc:
            console.print(f"Cannot load previous ledger {against}: {exc}", style="bold red")
            return 1

    asset_exists = asset_refs = None
    if check_assets:
        assets = assets_for(config)
        asset_exists = assets.exists
        asset_refs = assets.asset_refs()

    result = validate(
        project.ledger,
        graph=project.graph,
        asset_exists=asset_exists,
        asset_refs=asset_refs,
        previous=previous,
    )

    if output_json:
        _output_json(result, len(project.ledger))
    else:
        _print_human_output(console, result, len(project.ledger))

    return 0 if result.is_valid else 1


def _output_json(result: ValidationResult, entry_count: int) -> None:
    output = {
        "valid": result.is_valid,
        "violations": [v.to_dict() for v in result.violations],
        "summary": {
            "entries": entry_count,
            "violations": len(result.violations),
            "by_rule": {rule: len(vs) for rule, vs in result.by_rule().items()},
        },
    }
    print(json.dumps(output, indent=2))


def _print_human_output(console: Console, result: ValidationResult, entry_count: int) -> None:
    if result.is_valid:
        console.print(f"✓ Ledger is valid ({entry_count} entries)", style="green")
        return

    table = Table(title="Ledger violations")
    table.add_column("rule", style="magenta", no_wrap=True)
    table.add_column("entry", style="cyan", no_wrap=True)
    table.add_column("message")

    violations: list[Violation] = sorted(result.violations, key=lambda v: (v.rule, v.entry_id))
    for v in violations:
        table.add_row(v.rule, v.entry_id or "<ledger>", v.message)

    console.print(table)
    console.print(f"\n✗ {len(violations)} violation(s) in {entry_count} entries", style="bold red")


def run_explain(rule_id: str) -> int:
    """Explain a validation rule."""
    console = Console()
    info = RULES.get(rule_id)
    if info is None:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print(f"Available: {', '.join(RULES)}", style="dim")
        return 1

    console.print(f"[bold]{info.rule_id}[/] - {info.title}")
    console.print(info.description)
    return 0
