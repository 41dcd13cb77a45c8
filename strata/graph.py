"""Dependency graph construction and analysis."""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, field

from .errors import CycleError, DuplicateTagError, LedgerError, UnresolvedDependencyError
from .models import Entry, Ledger

# DFS colors
_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


@dataclass
class DependencyGraph:
    """Graph of entry dependencies, derived from declared emits/depends.

    Edges run producer -> consumer. Structural problems found while building
    (duplicate producers, unresolved names) are collected in `problems`
    rather than raised, so validation can report all of them at once.
    """

    nodes: dict[str, Entry] = field(default_factory=dict)  # id -> Entry
    producers: dict[str, str] = field(default_factory=dict)  # tag -> producing id
    edges: dict[str, set[str]] = field(
        default_factory=lambda: defaultdict(set)
    )  # producer -> consumers
    reverse_edges: dict[str, set[str]] = field(
        default_factory=lambda: defaultdict(set)
    )  # consumer -> producers
    problems: list[LedgerError] = field(default_factory=list)

    @classmethod
    def from_ledger(cls, ledger: Ledger) -> "DependencyGraph":
        """Build graph from a ledger."""
        graph = cls()

        # Add all nodes first
        for entry in ledger.entries:
            graph.nodes[entry.id] = entry

        # Register producers; the first declaration wins, later ones are problems
        for entry in ledger.entries:
            for name in sorted(entry.emits):
                first = graph.producers.get(name)
                if first is None:
                    graph.producers[name] = entry.id
                else:
                    graph.problems.append(
                        DuplicateTagError(
                            f"Tag '{name}' is already emitted by '{first}'",
                            entry_id=entry.id,
                            tag=name,
                            first_producer=first,
                        )
                    )

        # Build edges
        for entry in ledger.entries:
            for name in sorted(entry.depends):
                producer = graph.producers.get(name)
                if producer is None:
                    graph.problems.append(
                        UnresolvedDependencyError(
                            f"Depends on '{name}' but no entry emits it",
                            entry_id=entry.id,
                            tag=name,
                        )
                    )
                    continue
                graph.edges[producer].add(entry.id)
                graph.reverse_edges[entry.id].add(producer)

        return graph

    def producer_of(self, tag: str) -> str | None:
        return self.producers.get(tag)

    def dependencies(self, entry_id: str) -> set[str]:
        """Entries that directly produce tags `entry_id` depends on."""
        return set(self.reverse_edges.get(entry_id, set()))

    def dependents(self, entry_id: str) -> set[str]:
        """Entries that directly consume tags produced by `entry_id`."""
        return set(self.edges.get(entry_id, set()))

    def ancestors(self, entry_id: str) -> set[str]:
        """All entries reachable backwards from `entry_id` (excluding itself)."""
        visited: set[str] = set()
        stack = list(self.reverse_edges.get(entry_id, set()))

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            stack.extend(d for d in self.reverse_edges.get(current, set()) if d not in visited)

        visited.discard(entry_id)
        return visited

    def _sort_key(self, entry_id: str) -> tuple[int, str]:
        return self.nodes[entry_id].sort_key()

    def topological_order(self) -> list[str]:
        """Return entry ids in application order (producers first).

        Kahn's algorithm. Among nodes that become ready at the same time,
        the one with the lowest numeric id hint goes first. Returns a partial
        order if cycles exist.
        """
        in_degree = {node: len(self.reverse_edges.get(node, set())) for node in self.nodes}

        ready = [(self._sort_key(n), n) for n, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        result: list[str] = []

        while ready:
            _, node = heapq.heappop(ready)
            result.append(node)

            for dependent in self.edges.get(node, set()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (self._sort_key(dependent), dependent))

        return result

    def find_cycles(self) -> list[CycleError]:
        """Find cycles with a three-color DFS.

        Each back edge to an in-progress node yields one CycleError whose
        cycle is the closed path A -> ... -> A. A self-dependency comes out
        as [A, A].
        """
        color = {node: _UNVISITED for node in self.nodes}
        cycles: list[CycleError] = []
        seen: set[tuple[str, ...]] = set()

        def successors(node: str) -> list[str]:
            return sorted(self.edges.get(node, set()), key=self._sort_key)

        for root in sorted(self.nodes, key=self._sort_key):
            if color[root] != _UNVISITED:
                continue

            # Iterative DFS: stack of (node, iterator over successors)
            path: list[str] = [root]
            color[root] = _IN_PROGRESS
            stack = [(root, iter(successors(root)))]

            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if color[child] == _UNVISITED:
                        color[child] = _IN_PROGRESS
                        path.append(child)
                        stack.append((child, iter(successors(child))))
                        advanced = True
                        break
                    if color[child] == _IN_PROGRESS:
                        cycle = path[path.index(child):] + [child]
                        key = _normalize_cycle(cycle)
                        if key not in seen:
                            seen.add(key)
                            cycles.append(CycleError(cycle))
                if not advanced:
                    color[node] = _DONE
                    path.pop()
                    stack.pop()

        return cycles

    @property
    def is_acyclic(self) -> bool:
        return not self.find_cycles()


def _normalize_cycle(cycle: list[str]) -> tuple[str, ...]:
    """Rotate an open cycle to start at its smallest id, for deduplication."""
    body = cycle[:-1]
    start = body.index(min(body))
    return tuple(body[start:] + body[:start])
