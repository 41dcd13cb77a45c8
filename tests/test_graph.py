"""Tests for dependency graph construction, cycles and ordering."""

from __future__ import annotations

import random

import pytest

from strata.errors import CycleError, DuplicateTagError, UnresolvedDependencyError
from strata.graph import DependencyGraph
from strata.models import Ledger

from helpers import ORIGIN, SCENARIO_ORDER, script


def _random_ledger(seed: int, size: int = 12) -> Ledger:
    """Acyclic ledger where each entry depends on tags of earlier entries, declared shuffled."""
    rng = random.Random(seed)
    entries = [ORIGIN]
    tags = ["root"]
    for i in range(1, size):
        depends = set(rng.sample(tags, k=rng.randint(1, min(3, len(tags)))))
        emits = {f"t{i}a", f"t{i}b"} if rng.random() < 0.3 else {f"t{i}"}
        entries.append(script(f"{rng.randint(0, 50):04d}-e{i}", depends=depends, emits=emits))
        tags.extend(sorted(emits))
    rng.shuffle(entries)
    return Ledger(entries=tuple(entries))


def test_scenario_order_ignores_declaration_order(scenario_ledger: Ledger) -> None:
    graph = DependencyGraph.from_ledger(scenario_ledger)
    assert graph.problems == []
    assert graph.topological_order() == SCENARIO_ORDER


def test_ties_break_by_numeric_hint_not_string() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("10-alpha", depends={"root"}, emits={"a"}),
            script("9-beta", depends={"root"}, emits={"b"}),
            script("2-gamma", depends={"root"}, emits={"c"}),
        )
    )
    order = DependencyGraph.from_ledger(ledger).topological_order()
    assert order == ["0000-origin", "2-gamma", "9-beta", "10-alpha"]


def test_dependency_edges_beat_numeric_hint() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("0001-late", depends={"early"}, emits={"late"}),
            script("0099-early", depends={"root"}, emits={"early"}),
        )
    )
    order = DependencyGraph.from_ledger(ledger).topological_order()
    assert order == ["0000-origin", "0099-early", "0001-late"]


@pytest.mark.parametrize("seed", range(8))
def test_order_is_topological_for_random_ledgers(seed: int) -> None:
    ledger = _random_ledger(seed)
    graph = DependencyGraph.from_ledger(ledger)
    order = graph.topological_order()

    assert sorted(order) == sorted(ledger.ids)
    position = {entry_id: i for i, entry_id in enumerate(order)}
    for entry in ledger:
        for name in entry.depends:
            assert position[graph.producer_of(name)] < position[entry.id]

    # Deterministic across rebuilds
    assert DependencyGraph.from_ledger(ledger).topological_order() == order


def test_problems_are_collected_not_short_circuited() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("0001-a", depends={"root"}, emits={"shared"}),
            script("0002-b", depends={"root"}, emits={"shared"}),
            script("0003-c", depends={"ghost"}, emits={"c"}),
            script("0004-d", depends={"phantom"}, emits={"root"}),
        )
    )
    graph = DependencyGraph.from_ledger(ledger)

    duplicates = [p for p in graph.problems if isinstance(p, DuplicateTagError)]
    unresolved = [p for p in graph.problems if isinstance(p, UnresolvedDependencyError)]
    assert {(p.entry_id, p.tag) for p in duplicates} == {("0002-b", "shared"), ("0004-d", "root")}
    assert {(p.entry_id, p.tag) for p in unresolved} == {("0003-c", "ghost"), ("0004-d", "phantom")}


def test_two_node_cycle_reports_full_path() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("0005-a", depends={"y"}, emits={"x"}),
            script("0006-b", depends={"x"}, emits={"y"}),
        )
    )
    graph = DependencyGraph.from_ledger(ledger)
    cycles = graph.find_cycles()

    assert len(cycles) == 1
    assert isinstance(cycles[0], CycleError)
    assert cycles[0].cycle == ["0005-a", "0006-b", "0005-a"]
    assert "0005-a -> 0006-b -> 0005-a" in cycles[0].message
    assert not graph.is_acyclic


def test_three_node_cycle() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("0001-a", depends={"root", "z"}, emits={"x"}),
            script("0002-b", depends={"x"}, emits={"y"}),
            script("0003-c", depends={"y"}, emits={"z"}),
        )
    )
    cycles = DependencyGraph.from_ledger(ledger).find_cycles()
    assert [c.cycle for c in cycles] == [["0001-a", "0002-b", "0003-c", "0001-a"]]


def test_self_dependency_is_length_one_cycle() -> None:
    ledger = Ledger(entries=(ORIGIN, script("0001-loop", depends={"root", "self"}, emits={"self"})))
    cycles = DependencyGraph.from_ledger(ledger).find_cycles()
    assert [c.cycle for c in cycles] == [["0001-loop", "0001-loop"]]


def test_cycle_members_are_left_out_of_order() -> None:
    ledger = Ledger(
        entries=(
            ORIGIN,
            script("0001-ok", depends={"root"}, emits={"ok"}),
            script("0005-a", depends={"y"}, emits={"x"}),
            script("0006-b", depends={"x"}, emits={"y"}),
        )
    )
    assert DependencyGraph.from_ledger(ledger).topological_order() == ["0000-origin", "0001-ok"]


def test_acyclic_graph_has_no_cycles(scenario_ledger: Ledger) -> None:
    graph = DependencyGraph.from_ledger(scenario_ledger)
    assert graph.find_cycles() == []
    assert graph.is_acyclic


def test_neighbours_and_ancestors(scenario_ledger: Ledger) -> None:
    graph = DependencyGraph.from_ledger(scenario_ledger)

    assert graph.dependencies("0003-trees") == {"0001-terrain", "0002-sidewalks"}
    assert graph.dependents("0001-terrain") == {"0002-sidewalks", "0003-trees"}
    assert graph.ancestors("0003-trees") == {"0000-origin", "0001-terrain", "0002-sidewalks"}
    assert graph.ancestors("0000-origin") == set()
    assert graph.producer_of("sidewalks") == "0002-sidewalks"
    assert graph.producer_of("ghost") is None
