"""Order command - inspect the application order and dependency graph."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from ..config import StrataConfig
from ..graph import DependencyGraph
from ..models import Ledger
from ._shared import load_project


def run_order(config: StrataConfig, *, fmt: str = "text") -> int:
    """Print entries in application order.

    Returns 1 when cycles leave some entries out of the order.
    """
    err = Console(stderr=True)
    project = load_project(config, err)
    if project is None:
        return 1

    graph = project.graph
    order = graph.topological_order()
    cycles = graph.find_cycles()

    if fmt == "json":
        print(
            json.dumps(
                {
                    "order": order,
                    "cycles": [c.cycle for c in cycles],
                    "edges": {src: sorted(dsts) for src, dsts in sorted(graph.edges.items()) if dsts},
                },
                indent=2,
            )
        )
    elif fmt == "dot":
        print(to_dot(project.ledger, graph), end="")
    else:
        table = Table(title="Application order")
        table.add_column("#", justify="right", style="dim")
        table.add_column("entry", style="cyan", no_wrap=True)
        table.add_column("depends")
        table.add_column("emits", style="green")
        table.add_column("removes", style="red")
        for n, entry_id in enumerate(order, start=1):
            entry = graph.nodes[entry_id]
            table.add_row(
                str(n),
                entry_id,
                ", ".join(sorted(entry.depends)),
                ", ".join(sorted(entry.emits)),
                ", ".join(sorted(entry.removes)),
            )
        Console().print(table)

    for cycle in cycles:
        err.print(f"✗ {cycle}", style="bold red")
    return 1 if cycles else 0


def to_dot(ledger: Ledger, graph: DependencyGraph) -> str:
    """Render the dependency graph as Graphviz DOT; edges are labelled with the tags they carry."""

    def esc(s: str) -> str:
        return s.replace("\\", "\\\\").replace('"', '\\"')

    shapes = {"script": "box", "asset": "folder", "remove": "octagon"}
    lines = [
        "digraph ledger {",
        "  rankdir=LR;",
        "  node [fontname=\"Helvetica\", fontsize=10];",
        "  edge [fontname=\"Helvetica\", fontsize=8];",
    ]

    for entry in ledger.entries:
        shape = shapes.get(entry.kind.value, "box")
        lines.append(f'  "{esc(entry.id)}" [shape={shape}];')

    for entry in ledger.entries:
        by_producer: dict[str, list[str]] = {}
        for name in sorted(entry.depends):
            producer = graph.producer_of(name)
            if producer is not None:
                by_producer.setdefault(producer, []).append(name)
        for producer, names in sorted(by_producer.items()):
            label = ", ".join(names)
            lines.append(f'  "{esc(producer)}" -> "{esc(entry.id)}" [label="{esc(label)}"];')

    lines.append("}")
    return "\n".join(lines) + "\n"
