"""
Incremental migration executor.

Applies pending ledger entries one at a time, in topological order, through
an external MutationInvoker. After each success the applied record is grown
and persisted before the next entry starts; the first failure halts the run
and persists nothing for the failing entry.

Key invariants:
- Single writer, strictly sequential: never two mutation bodies at once
- Applied is terminal; Failed only ends the current run
- The applied record must be downward closed; violations are fatal
- No rollback of external side effects; bodies must be safe to retry
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

from rich.console import Console

from .audit_log import MIGRATION_APPLIED, MIGRATION_FAILED, RUN_REFUSED, log_operation
from .errors import (
    ConsistencyError,
    LedgerInvalidError,
    MigrationExecutionError,
    StrataError,
)
from .graph import DependencyGraph
from .models import AppliedRecord, Entry, Ledger, Payload
from .registry import TagRegistry, TagView
from .status import pending_ids
from .store import LedgerStore
from .validation import AssetExists, validate


class EntryState(str, Enum):
    """Per-entry state within one run."""

    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationResult:
    """Structured outcome a mutation body may return."""

    ok: bool = True
    message: str | None = None

    @classmethod
    def success(cls, message: str | None = None) -> "MutationResult":
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, message: str) -> "MutationResult":
        return cls(ok=False, message=message)


EmitFn = Callable[[str, Payload], None]
InvokerOutcome = Union[MutationResult, bool, None]


class MutationInvoker(Protocol):
    """Capability that applies one entry's change to the host.

    Return None or MutationResult.success() on success. Raise, or return
    MutationResult.failure(...), on failure. May return an awaitable, which
    the executor drives to completion before moving on. When the calling
    thread already runs an event loop, the awaitable gets its own loop on a
    worker thread, so it must not touch objects bound to the host's loop.
    """

    def __call__(
        self, entry: Entry, tags: TagView, emit: EmitFn
    ) -> InvokerOutcome | Awaitable[InvokerOutcome]: ...


@dataclass
class RunSummary:
    """Result of one executor run."""

    applied: list[str] = field(default_factory=list)
    failed_id: str | None = None
    error: MigrationExecutionError | None = None
    states: dict[str, EntryState] = field(default_factory=dict)
    record: AppliedRecord = field(default_factory=AppliedRecord)

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "applied": self.applied,
            "failed_id": self.failed_id,
            "error": str(self.error) if self.error else None,
            "states": {k: v.value for k, v in self.states.items()},
        }


class _Emitter:
    """EmitFn bound to one entry. Sealed once the body returns."""

    def __init__(self, registry: TagRegistry, entry: Entry):
        self._registry = registry
        self._entry = entry
        self._lock = threading.Lock()
        self._sealed = False
        self.emitted: list[str] = []
        self.error: StrataError | None = None

    def __call__(self, name: str, payload: Payload = None) -> None:
        with self._lock:
            if self._sealed:
                raise MigrationExecutionError(self._entry.id, f"emit('{name}') after the migration finished")
            if name not in self._entry.emits:
                self.error = MigrationExecutionError(self._entry.id, f"emitted undeclared tag '{name}'")
                raise self.error
            try:
                self._registry.emit(name, payload, self._entry.id)
            except StrataError as exc:
                self.error = exc
                raise
            self.emitted.append(name)

    def seal(self) -> None:
        with self._lock:
            self._sealed = True


def verify_downward_closed(graph: DependencyGraph, record: AppliedRecord) -> None:
    """Raise ConsistencyError unless every applied entry's producers were applied before it."""
    position: dict[str, int] = {}
    for index, entry_id in enumerate(record.applied_ids):
        if entry_id not in graph.nodes:
            raise ConsistencyError(f"Applied entry '{entry_id}' is not in the ledger")
        if entry_id in position:
            raise ConsistencyError(f"Applied entry '{entry_id}' is recorded twice")
        position[entry_id] = index

    for index, entry_id in enumerate(record.applied_ids):
        entry = graph.nodes[entry_id]
        for name in sorted(entry.depends):
            producer = graph.producer_of(name)
            if producer is None or position.get(producer, index) >= index:
                raise ConsistencyError(
                    f"Applied entry '{entry_id}' depends on '{name}' "
                    f"but its producer '{producer}' was not applied before it"
                )

    for name, tag in record.tags.items():
        if tag.produced_by not in position:
            raise ConsistencyError(f"Tag '{name}' was produced by '{tag.produced_by}' which is not applied")
        if graph.producer_of(name) != tag.produced_by:
            raise ConsistencyError(f"Tag '{name}' is recorded as produced by '{tag.produced_by}' but not declared there")


def _failure_message(outcome: Any) -> str | None:
    if outcome is False:
        return "migration reported failure"
    if isinstance(outcome, MutationResult) and not outcome.ok:
        return outcome.message or "migration reported failure"
    return None


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _drive(awaitable: Awaitable[Any]) -> Any:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_await(awaitable))

    # asyncio.run refuses to nest inside a running loop
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="strata-async") as pool:
        return pool.submit(asyncio.run, _await(awaitable)).result()


class Executor:
    """Applies pending entries of a validated ledger."""

    def __init__(
        self,
        ledger: Ledger,
        graph: DependencyGraph,
        record: AppliedRecord,
        invoker: MutationInvoker,
        store: LedgerStore,
        *,
        timeout: float | None = None,
        console: Console | None = None,
        project_root: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if graph.problems or not graph.is_acyclic:
            raise LedgerInvalidError(validate(ledger, graph=graph))

        self.ledger = ledger
        self.graph = graph
        self.record = record
        self.invoker = invoker
        self.store = store
        self.timeout = timeout
        self.console = console or Console(stderr=True)
        self.project_root = project_root
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def pending(self) -> list[str]:
        return pending_ids(self.graph, self.record)

    def run(self) -> RunSummary:
        """Apply every pending entry, halting on the first failure."""
        try:
            verify_downward_closed(self.graph, self.record)
        except ConsistencyError as exc:
            self._audit(RUN_REFUSED, error=str(exc))
            raise

        pending = self.pending()
        summary = RunSummary(states={i: EntryState.PENDING for i in pending}, record=self.record)
        if not pending:
            self.console.print("Nothing to apply.", style="dim")
            return summary

        registry = TagRegistry.from_record(self.record)
        self.console.print(f"Applying {len(pending)} pending migration(s)...", style="dim")

        for entry_id in pending:
            entry = self.graph.nodes[entry_id]
            summary.states[entry_id] = EntryState.APPLYING
            self.console.print(f"  {entry_id} ({entry.kind.value})", style="dim")

            emitter = _Emitter(registry, entry)
            started = time.monotonic()
            cause: BaseException | str | None = None
            try:
                outcome = self._invoke(entry, registry.view(), emitter)
                cause = emitter.error or _failure_message(outcome)
            except Exception as exc:
                cause = emitter.error or exc
            finally:
                emitter.seal()
            duration_ms = (time.monotonic() - started) * 1000

            if cause is not None:
                self._fail(summary, registry, entry, cause, duration_ms)
                return summary

            self._commit(summary, registry, entry, duration_ms)

        self.console.print(f"✓ Applied {len(summary.applied)} migration(s).", style="green")
        return summary

    def _invoke(self, entry: Entry, view: TagView, emit: EmitFn) -> Any:
        if self.timeout is None:
            return self._call(entry, view, emit)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="strata-migration")
        try:
            future = pool.submit(self._call, entry, view, emit)
            try:
                return future.result(timeout=self.timeout)
            except TimeoutError as exc:
                raise TimeoutError(f"exceeded time bound of {self.timeout}s") from exc
        finally:
            # A timed-out body cannot be cancelled; it keeps running detached.
            pool.shutdown(wait=False)

    def _call(self, entry: Entry, view: TagView, emit: EmitFn) -> Any:
        outcome = self.invoker(entry, view, emit)
        if inspect.isawaitable(outcome):
            outcome = _drive(outcome)
        return outcome

    def _commit(self, summary: RunSummary, registry: TagRegistry, entry: Entry, duration_ms: float) -> None:
        # Declared tags the body did not emit explicitly still come into existence.
        for name in sorted(entry.emits):
            if name not in registry:
                registry.emit(name, None, entry.id)

        tags = registry.emitted_by(entry.id)
        new_record = self.record.with_applied(entry.id, tags, self.clock())
        try:
            self.store.save(self.ledger, new_record)
        except BaseException:
            registry.discard_from(entry.id, keep=self.record.tags)
            summary.states[entry.id] = EntryState.FAILED
            summary.failed_id = entry.id
            self.console.print(f"✗ Could not persist {entry.id}", style="bold red")
            raise

        self.record = new_record
        summary.record = new_record
        summary.applied.append(entry.id)
        summary.states[entry.id] = EntryState.APPLIED
        self._audit(
            MIGRATION_APPLIED,
            entry_id=entry.id,
            tags=sorted(t.name for t in tags),
            duration_ms=duration_ms,
        )

    def _fail(
        self,
        summary: RunSummary,
        registry: TagRegistry,
        entry: Entry,
        cause: BaseException | str,
        duration_ms: float,
    ) -> None:
        registry.discard_from(entry.id, keep=self.record.tags)
        error = cause if isinstance(cause, MigrationExecutionError) else MigrationExecutionError(entry.id, cause)

        summary.states[entry.id] = EntryState.FAILED
        summary.failed_id = entry.id
        summary.error = error
        self.console.print(f"✗ {error}", style="bold red")
        self._audit(MIGRATION_FAILED, entry_id=entry.id, duration_ms=duration_ms, error=str(cause))

    def _audit(self, operation: str, **kwargs: Any) -> None:
        if self.project_root is not None:
            log_operation(self.project_root, operation, **kwargs)


def migrate(
    store: LedgerStore,
    invoker: MutationInvoker,
    *,
    asset_exists: AssetExists | None = None,
    asset_refs: Iterable[str] | None = None,
    timeout: float | None = None,
    console: Console | None = None,
    project_root: Path | None = None,
) -> RunSummary:
    """Load, validate and run. The executor is never reached for an invalid ledger.

    Raises:
        SchemaError: malformed ledger document
        LedgerInvalidError: validation found violations
        ConsistencyError: applied record is not downward closed
    """
    ledger, record = store.load()
    graph = DependencyGraph.from_ledger(ledger)

    result = validate(ledger, graph=graph, asset_exists=asset_exists, asset_refs=asset_refs)
    if not result.is_valid:
        if project_root is not None:
            log_operation(
                project_root,
                RUN_REFUSED,
                error=f"{len(result.violations)} validation violation(s)",
                metadata={"rules": sorted({v.rule for v in result.violations})},
            )
        raise LedgerInvalidError(result)

    executor = Executor(
        ledger,
        graph,
        record,
        invoker,
        store,
        timeout=timeout,
        console=console,
        project_root=project_root,
    )
    return executor.run()
