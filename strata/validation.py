"""Validation rules for migration ledgers.

`validate()` is the single rule implementation shared by the executor gate
and the `strata validate` pre-submission check. It never stops at the first
problem: every rule runs and the union of findings is returned.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .errors import (
    AppendOnlyError,
    LedgerError,
    LedgerInvalidError,
    MissingAssetError,
    NoEffectError,
    OriginError,
    OrphanAssetError,
    RemoveIntegrityError,
)
from .graph import DependencyGraph
from .models import EntryKind, Ledger, normalize_source_ref

AssetExists = Callable[[str], bool]


@dataclass
class RuleInfo:
    """Documentation for one validation rule."""

    rule_id: str
    title: str
    description: str


RULES: dict[str, RuleInfo] = {
    "origin": RuleInfo(
        "origin",
        "Single script origin",
        "Exactly one entry has no dependencies, and it must be a script entry. "
        "Every other entry depends on at least one tag.",
    ),
    "missing-asset": RuleInfo(
        "missing-asset",
        "Asset sources resolve",
        "Every asset entry's source must exist according to the host's asset check.",
    ),
    "orphan-asset": RuleInfo(
        "orphan-asset",
        "No orphan resources",
        "Every asset known to the host must be claimed by some asset entry.",
    ),
    "unresolved-dependency": RuleInfo(
        "unresolved-dependency",
        "Dependencies resolve",
        "Every name in an entry's depends list must be emitted by some entry.",
    ),
    "dependency-cycle": RuleInfo(
        "dependency-cycle",
        "Acyclic dependencies",
        "The graph derived from depends/emits must have no cycles, including self-dependencies.",
    ),
    "duplicate-tag": RuleInfo(
        "duplicate-tag",
        "Unique tags",
        "A tag name may appear in the emits list of at most one entry.",
    ),
    "remove-integrity": RuleInfo(
        "remove-integrity",
        "Removals follow their producers",
        "Every name an entry removes must be emitted by an entry that comes earlier in "
        "application order, never by the entry itself or a later one.",
    ),
    "no-effect": RuleInfo(
        "no-effect",
        "Entries have an effect",
        "Every entry emits at least one tag, unless it is a remove entry with a non-empty removes list.",
    ),
    "append-only": RuleInfo(
        "append-only",
        "Committed entries are immutable",
        "Compared with a previous ledger, committed entries are never edited, deleted or reordered.",
    ),
}


def get_rule_ids() -> list[str]:
    return list(RULES)


@dataclass
class Violation:
    """A single validation finding."""

    rule: str
    entry_id: str
    message: str
    error: LedgerError

    @classmethod
    def from_error(cls, error: LedgerError) -> "Violation":
        return cls(rule=error.rule, entry_id=error.entry_id, message=error.message, error=error)

    def to_dict(self) -> dict:
        return {
            "rule": self.rule,
            "entry_id": self.entry_id,
            "message": self.message,
            "error": type(self.error).__name__,
        }

    def __str__(self) -> str:
        loc = self.entry_id or "<ledger>"
        return f"[{self.rule}] {loc} - {self.message}"


@dataclass
class ValidationResult:
    """Outcome of validation. An empty violation list means valid."""

    violations: list[Violation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def by_rule(self) -> dict[str, list[Violation]]:
        grouped: dict[str, list[Violation]] = defaultdict(list)
        for v in self.violations:
            grouped[v.rule].append(v)
        return dict(grouped)

    def of_type(self, error_type: type[LedgerError]) -> list[Violation]:
        return [v for v in self.violations if isinstance(v.error, error_type)]

    def raise_if_invalid(self) -> None:
        if self.violations:
            raise LedgerInvalidError(self)


class LedgerRules:
    """Collection of validation rules over one ledger and its graph."""

    def __init__(
        self,
        ledger: Ledger,
        graph: DependencyGraph | None = None,
        *,
        asset_exists: AssetExists | None = None,
        asset_refs: Iterable[str] | None = None,
        previous: Ledger | None = None,
    ):
        self.ledger = ledger
        self.graph = graph or DependencyGraph.from_ledger(ledger)
        self.asset_exists = asset_exists
        self.asset_refs = asset_refs
        self.previous = previous

    def run_all(self) -> list[LedgerError]:
        """Run all checks and return every finding."""
        results: list[LedgerError] = []
        results.extend(self.check_origin())
        results.extend(self.check_assets())
        results.extend(self.check_graph_structure())
        results.extend(self.check_cycles())
        results.extend(self.check_remove_integrity())
        results.extend(self.check_effects())
        results.extend(self.check_append_only())
        return results

    def check_origin(self) -> list[LedgerError]:
        """Exactly one entry without dependencies, of kind script."""
        origins = [e for e in self.ledger.entries if e.is_origin]
        if not origins:
            return [OriginError("Ledger has no origin entry (an entry with no dependencies)")]

        results: list[LedgerError] = []
        first, extra = origins[0], origins[1:]
        if first.kind is not EntryKind.SCRIPT:
            results.append(
                OriginError(f"Origin entry must be a script, not '{first.kind.value}'", entry_id=first.id)
            )
        for entry in extra:
            results.append(
                OriginError(
                    f"Entry has no dependencies but '{first.id}' is already the origin",
                    entry_id=entry.id,
                )
            )
        return results

    def check_assets(self) -> list[LedgerError]:
        """Asset sources exist and no asset is left unclaimed."""
        results: list[LedgerError] = []
        asset_entries = [e for e in self.ledger.entries if e.kind is EntryKind.ASSET]

        if self.asset_exists is not None:
            for entry in asset_entries:
                if not entry.source or not self.asset_exists(entry.source):
                    results.append(
                        MissingAssetError(
                            f"Asset source '{entry.source}' does not exist",
                            entry_id=entry.id,
                            source=entry.source,
                        )
                    )

        if self.asset_refs is not None:
            claimed = {normalize_source_ref(e.source) for e in asset_entries}
            on_disk = {normalize_source_ref(ref): ref for ref in self.asset_refs}
            for key in sorted(on_disk.keys() - claimed):
                ref = on_disk[key]
                results.append(OrphanAssetError(f"Asset '{ref}' is not referenced by any entry", source=ref))

        return results

    def check_graph_structure(self) -> list[LedgerError]:
        """Unresolved dependencies and duplicate tags, from graph construction."""
        return list(self.graph.problems)

    def check_cycles(self) -> list[LedgerError]:
        """No dependency cycles."""
        return list(self.graph.find_cycles())

    def check_remove_integrity(self) -> list[LedgerError]:
        """Removed tags were emitted earlier in application order."""
        results: list[LedgerError] = []
        position = {entry_id: i for i, entry_id in enumerate(self.graph.topological_order())}

        for entry in self.ledger.entries:
            for name in sorted(entry.removes):
                producer = self.graph.producer_of(name)
                if producer is None:
                    message = f"Removes '{name}' but no entry emits it"
                elif producer == entry.id:
                    message = f"Removes '{name}' which it emits itself"
                elif entry.id in position and producer in position and position[producer] > position[entry.id]:
                    message = f"Removes '{name}' before its producer '{producer}' is applied"
                else:
                    continue
                results.append(RemoveIntegrityError(message, entry_id=entry.id, tag=name))

        return results

    def check_effects(self) -> list[LedgerError]:
        """Every entry emits something or removes something."""
        results: list[LedgerError] = []
        for entry in self.ledger.entries:
            if entry.emits:
                continue
            if entry.kind is EntryKind.REMOVE and entry.removes:
                continue
            results.append(NoEffectError("Entry emits no tags and removes nothing", entry_id=entry.id))
        return results

    def check_append_only(self) -> list[LedgerError]:
        """Previously committed entries are unchanged and in order."""
        if self.previous is None:
            return []

        results: list[LedgerError] = []
        current_index = {e.id: i for i, e in enumerate(self.ledger.entries)}
        last_index = -1

        for old in self.previous.entries:
            index = current_index.get(old.id)
            if index is None:
                results.append(AppendOnlyError("Committed entry was deleted", entry_id=old.id))
                continue
            if self.ledger.entries[index] != old:
                results.append(AppendOnlyError("Committed entry was modified", entry_id=old.id))
            if index < last_index:
                results.append(AppendOnlyError("Committed entry was reordered", entry_id=old.id))
            last_index = max(last_index, index)

        return results


def validate(
    ledger: Ledger,
    *,
    graph: DependencyGraph | None = None,
    asset_exists: AssetExists | None = None,
    asset_refs: Iterable[str] | None = None,
    previous: Ledger | None = None,
) -> ValidationResult:
    """Validate a ledger and return every violation found.

    Args:
        ledger: Ledger to check
        graph: Pre-built graph for the ledger (built if omitted)
        asset_exists: Host check for asset sources; missing-asset is skipped without it
        asset_refs: All asset refs the host knows about; orphan detection is skipped without it
        previous: Previously committed ledger; the append-only check is skipped without it
    """
    rules = LedgerRules(ledger, graph, asset_exists=asset_exists, asset_refs=asset_refs, previous=previous)
    return ValidationResult(violations=[Violation.from_error(e) for e in rules.run_all()])
