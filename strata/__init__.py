"""
strata - dependency-ordered, incrementally applied migration ledger.

Entries declare the tags they depend on and the tags they emit. The engine
derives application order from that graph, applies each pending entry once
through an external invoker, and records progress after every success.
"""

__version__ = "0.1.0"

from .errors import (
    AppendOnlyError,
    ConfigError,
    ConsistencyError,
    CycleError,
    DuplicateTagError,
    InvalidPayloadError,
    LedgerError,
    LedgerInvalidError,
    MigrationExecutionError,
    MissingAssetError,
    NoEffectError,
    OriginError,
    OrphanAssetError,
    RemoveIntegrityError,
    SchemaError,
    StrataError,
    TagNotFoundError,
    UnresolvedDependencyError,
)
from .executor import EntryState, Executor, MutationInvoker, MutationResult, RunSummary, migrate
from .graph import DependencyGraph
from .models import AppliedRecord, Entry, EntryKind, Ledger, Tag
from .registry import TagRegistry, TagView
from .status import StatusReport, project_status
from .store import LedgerStore, load_ledger
from .validation import ValidationResult, Violation, validate

__all__ = [
    "__version__",
    # Model
    "AppliedRecord",
    "Entry",
    "EntryKind",
    "Ledger",
    "Tag",
    # Components
    "DependencyGraph",
    "EntryState",
    "Executor",
    "LedgerStore",
    "MutationInvoker",
    "MutationResult",
    "RunSummary",
    "StatusReport",
    "TagRegistry",
    "TagView",
    "ValidationResult",
    "Violation",
    "load_ledger",
    "migrate",
    "project_status",
    "validate",
    # Errors
    "AppendOnlyError",
    "ConfigError",
    "ConsistencyError",
    "CycleError",
    "DuplicateTagError",
    "InvalidPayloadError",
    "LedgerError",
    "LedgerInvalidError",
    "MigrationExecutionError",
    "MissingAssetError",
    "NoEffectError",
    "OriginError",
    "OrphanAssetError",
    "RemoveIntegrityError",
    "SchemaError",
    "StrataError",
    "TagNotFoundError",
    "UnresolvedDependencyError",
]
