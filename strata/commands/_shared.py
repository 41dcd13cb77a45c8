"""Loading helpers shared by commands."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console

from ..assets import FilesystemAssets
from ..config import StrataConfig
from ..errors import SchemaError
from ..graph import DependencyGraph
from ..models import AppliedRecord, Ledger
from ..store import LedgerStore


@dataclass
class LoadedProject:
    store: LedgerStore
    ledger: Ledger
    record: AppliedRecord
    graph: DependencyGraph


def load_project(config: StrataConfig, console: Console) -> LoadedProject | None:
    """Load the ledger for `config`, printing the reason and returning None on failure."""
    store = LedgerStore(config.ledger_path)
    if not store.exists():
        console.print(f"Ledger not found: {config.ledger_path}", style="bold red")
        return None

    console.print(f"Loading ledger from {config.ledger_path}...", style="dim")
    try:
        ledger, record = store.load()
    except SchemaError as exc:
        console.print(f"Schema error: {exc}", style="bold red")
        return None

    return LoadedProject(store=store, ledger=ledger, record=record, graph=DependencyGraph.from_ledger(ledger))


def assets_for(config: StrataConfig) -> FilesystemAssets:
    return FilesystemAssets(config.root, config.assets)
