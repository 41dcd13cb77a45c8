"""
Audit log for migration runs.

Every commit and every failure the executor sees is appended to
.strata/audit.log (JSON Lines). The log is accounting only; the ledger
document stays the source of truth for what has been applied.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MIGRATION_APPLIED = "migration-applied"
MIGRATION_FAILED = "migration-failed"
RUN_REFUSED = "run-refused"


@dataclass
class AuditEntry:
    """A single audit log entry."""
    timestamp: str
    operation: str
    entry_id: str | None = None
    tags: list[str] = field(default_factory=list)
    duration_ms: float | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "entry_id": self.entry_id,
            "tags": self.tags,
        }
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        if self.error is not None:
            data["error"] = self.error
        data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        """Create from dictionary."""
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            entry_id=data.get("entry_id"),
            tags=list(data.get("tags", [])),
            duration_ms=data.get("duration_ms"),
            error=data.get("error"),
            metadata=data.get("metadata", {}),
        )


def get_audit_log_path(project_root: Path) -> Path:
    """Get the path to the audit log file."""
    return project_root / ".strata" / "audit.log"


def ensure_audit_dir(project_root: Path) -> Path:
    """Ensure the .strata directory exists and return audit log path."""
    log_path = get_audit_log_path(project_root)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return log_path


def log_operation(
    project_root: Path,
    operation: str,
    *,
    entry_id: str | None = None,
    tags: list[str] | None = None,
    duration_ms: float | None = None,
    error: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEntry:
    """
    Append an operation to the audit log.

    Args:
        project_root: Project root directory
        operation: Operation name (e.g., "migration-applied")
        entry_id: Ledger entry the operation concerns
        tags: Tags emitted by the entry
        duration_ms: Wall time of the mutation body
        error: Failure detail, if any
        metadata: Additional context

    Returns:
        The created audit entry
    """
    entry = AuditEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        operation=operation,
        entry_id=entry_id,
        tags=tags or [],
        duration_ms=duration_ms,
        error=error,
        metadata=metadata or {},
    )

    log_path = ensure_audit_dir(project_root)

    # Append as JSON Lines format (one JSON object per line)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict()) + "\n")

    return entry


def read_audit_log(project_root: Path, last_n: int | None = None) -> list[AuditEntry]:
    """
    Read entries from the audit log.

    Args:
        project_root: Project root directory
        last_n: If specified, return only the last N entries

    Returns:
        List of audit entries, oldest first
    """
    log_path = get_audit_log_path(project_root)
    if not log_path.exists():
        return []

    entries = []
    with log_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    data = json.loads(line)
                    entries.append(AuditEntry.from_dict(data))
                except (json.JSONDecodeError, KeyError):
                    continue  # Skip malformed lines

    if last_n is not None:
        return entries[-last_n:]
    return entries


def format_audit_entry(entry: AuditEntry) -> str:
    """Format an audit entry for human-readable display."""
    head = f"[{entry.timestamp}] {entry.operation}"
    if entry.entry_id:
        head += f" {entry.entry_id}"
    lines = [head]

    if entry.tags:
        lines.append(f"  Tags: {', '.join(entry.tags)}")
    if entry.duration_ms is not None:
        lines.append(f"  Duration: {entry.duration_ms:.1f} ms")
    if entry.error:
        lines.append(f"  Error: {entry.error}")
    for key, value in entry.metadata.items():
        lines.append(f"  {key}: {value}")

    return "\n".join(lines)
