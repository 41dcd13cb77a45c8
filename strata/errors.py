"""
Error taxonomy for the migration ledger.

Structural problems (SchemaError) abort loading. Semantic problems
(LedgerError subclasses) are collected by the validation engine and reported
as a batch. Execution problems are fail-fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .validation import ValidationResult


class StrataError(Exception):
    """Base class for all strata errors."""


class ConfigError(StrataError):
    """Project configuration is missing or malformed."""


class SchemaError(StrataError):
    """The ledger document is structurally malformed.

    Carries the position of the offending record (e.g. ``migration[3]``)
    and, where known, the field name.
    """

    def __init__(self, message: str, *, position: str | None = None, field: str | None = None):
        self.message = message
        self.position = position
        self.field = field
        super().__init__(str(self))

    def __str__(self) -> str:
        loc = self.position or ""
        if self.field:
            loc = f"{loc}.{self.field}" if loc else self.field
        return f"{loc}: {self.message}" if loc else self.message


# -----------------------------------------------------------------------------
# Semantic violations (collected, never short-circuited)
# -----------------------------------------------------------------------------


class LedgerError(StrataError):
    """A semantic violation attributed to one ledger entry."""

    rule: str = "ledger"

    def __init__(self, message: str, *, entry_id: str = ""):
        self.message = message
        self.entry_id = entry_id
        super().__init__(message)


class OriginError(LedgerError):
    rule = "origin"


class MissingAssetError(LedgerError):
    rule = "missing-asset"

    def __init__(self, message: str, *, entry_id: str = "", source: str = ""):
        self.source = source
        super().__init__(message, entry_id=entry_id)


class OrphanAssetError(LedgerError):
    rule = "orphan-asset"

    def __init__(self, message: str, *, source: str = ""):
        self.source = source
        super().__init__(message, entry_id="")


class UnresolvedDependencyError(LedgerError):
    rule = "unresolved-dependency"

    def __init__(self, message: str, *, entry_id: str = "", tag: str = ""):
        self.tag = tag
        super().__init__(message, entry_id=entry_id)


class CycleError(LedgerError):
    rule = "dependency-cycle"

    def __init__(self, cycle: Sequence[str]):
        # Closed path: the first id is repeated at the end.
        self.cycle = list(cycle)
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(self.cycle)}",
            entry_id=self.cycle[0] if self.cycle else "",
        )


class DuplicateTagError(LedgerError):
    rule = "duplicate-tag"

    def __init__(self, message: str, *, entry_id: str = "", tag: str = "", first_producer: str = ""):
        self.tag = tag
        self.first_producer = first_producer
        super().__init__(message, entry_id=entry_id)


class RemoveIntegrityError(LedgerError):
    rule = "remove-integrity"

    def __init__(self, message: str, *, entry_id: str = "", tag: str = ""):
        self.tag = tag
        super().__init__(message, entry_id=entry_id)


class NoEffectError(LedgerError):
    rule = "no-effect"


class AppendOnlyError(LedgerError):
    rule = "append-only"


# -----------------------------------------------------------------------------
# Gate and runtime errors
# -----------------------------------------------------------------------------


class LedgerInvalidError(StrataError):
    """The validation gate refused to run the executor."""

    def __init__(self, result: "ValidationResult"):
        self.result = result
        count = len(result.violations)
        first = result.violations[0] if result.violations else None
        detail = f": [{first.rule}] {first.message}" if first else ""
        super().__init__(f"Ledger has {count} violation(s){detail}")


class ConsistencyError(StrataError):
    """The applied record is not downward closed under the dependency graph.

    Indicates tampering or corruption. Never repaired automatically.
    """


class MigrationExecutionError(StrataError):
    """A migration body failed."""

    def __init__(self, entry_id: str, cause: BaseException | str):
        self.entry_id = entry_id
        self.cause = cause
        super().__init__(f"Migration {entry_id} failed: {cause}")


class TagNotFoundError(StrataError, KeyError):
    """A tag name is not resolvable at this point."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Tag not found: {self.name}"


class InvalidPayloadError(StrataError, ValueError):
    """A tag payload is not a JSON-like value."""
