"""Read-only status projection over a ledger and its applied record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .graph import DependencyGraph
from .models import AppliedRecord, Ledger, Payload


def pending_ids(graph: DependencyGraph, record: AppliedRecord) -> list[str]:
    """Topological order minus the applied set, order preserved."""
    applied = set(record.applied_ids)
    return [entry_id for entry_id in graph.topological_order() if entry_id not in applied]


@dataclass
class StatusReport:
    """Applied/pending view of a ledger."""

    applied_ids: list[str]
    pending_ids: list[str]
    blocked_ids: list[str] = field(default_factory=list)  # unreachable because of cycles
    tags: dict[str, Payload] = field(default_factory=dict)
    producers: dict[str, str] = field(default_factory=dict)
    last_applied: str | None = None
    applied_at: str | None = None

    @property
    def up_to_date(self) -> bool:
        return not self.pending_ids and not self.blocked_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied_ids": self.applied_ids,
            "pending_ids": self.pending_ids,
            "blocked_ids": self.blocked_ids,
            "tags": self.tags,
            "producers": self.producers,
            "last_applied": self.last_applied,
            "applied_at": self.applied_at,
        }


def project_status(ledger: Ledger, graph: DependencyGraph, record: AppliedRecord) -> StatusReport:
    """Build the status projection. Never mutates anything."""
    order = graph.topological_order()
    ordered = set(order)
    applied = set(record.applied_ids)

    return StatusReport(
        applied_ids=list(record.applied_ids),
        pending_ids=[i for i in order if i not in applied],
        blocked_ids=[e.id for e in ledger.entries if e.id not in ordered and e.id not in applied],
        tags=record.tag_snapshot,
        producers={name: tag.produced_by for name, tag in record.tags.items()},
        last_applied=record.last_applied,
        applied_at=record.applied_at.isoformat() if record.applied_at else None,
    )
