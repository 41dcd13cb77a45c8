"""Data models for ledger entries, tags and applied state."""

from __future__ import annotations

import math
import posixpath
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Union

from .errors import InvalidPayloadError, SchemaError

# Schema versions this build can read and write.
SCHEMA_VERSION = 1

# JSON-like payload: null/bool/number/string/list/map
Payload = Union[None, bool, int, float, str, list["Payload"], dict[str, "Payload"]]

_ORDINAL_RE = re.compile(r"\d+")


class EntryKind(str, Enum):
    """Kinds of ledger entries."""

    SCRIPT = "script"
    ASSET = "asset"
    REMOVE = "remove"


def entry_ordinal(entry_id: str) -> int | None:
    """Numeric ordering hint embedded in an entry id (first run of digits)."""
    match = _ORDINAL_RE.search(entry_id)
    return int(match.group()) if match else None


def normalize_source_ref(ref: str) -> str:
    """Canonical form of a root-relative source ref: posix separators, no '.' segments."""
    if not ref:
        return ""
    return posixpath.normpath(ref.replace("\\", "/"))


def check_payload(value: Any, *, path: str = "$") -> None:
    """Raise InvalidPayloadError unless `value` is a JSON-like value."""
    if value is None or isinstance(value, (bool, str, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidPayloadError(f"{path}: non-finite number {value!r}")
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            check_payload(item, path=f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidPayloadError(f"{path}: map key {key!r} is not a string")
            check_payload(item, path=f"{path}.{key}")
        return
    raise InvalidPayloadError(f"{path}: unsupported payload type {type(value).__name__}")


@dataclass(frozen=True)
class Entry:
    """One immutable unit of change in the ledger."""

    id: str
    kind: EntryKind
    source: str = ""  # opaque locator, resolved by an external loader
    depends: frozenset[str] = frozenset()
    emits: frozenset[str] = frozenset()
    removes: frozenset[str] = frozenset()
    description: str = ""

    def __post_init__(self) -> None:
        # Accept any iterable for the tag sets but always store frozensets
        for name in ("depends", "emits", "removes"):
            value = getattr(self, name)
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, frozenset(value))

    @property
    def ordinal(self) -> int | None:
        return entry_ordinal(self.id)

    @property
    def is_origin(self) -> bool:
        return not self.depends

    def sort_key(self) -> tuple[int, str]:
        """Tie-break key: numeric hint first, then the id itself."""
        ordinal = self.ordinal
        return (ordinal if ordinal is not None else -1, self.id)


@dataclass(frozen=True)
class Ledger:
    """Append-ordered collection of entries plus schema metadata."""

    entries: tuple[Entry, ...] = ()
    schema_version: int = SCHEMA_VERSION

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, entry_id: object) -> bool:
        return any(e.id == entry_id for e in self.entries)

    def get(self, entry_id: str) -> Entry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    @property
    def ids(self) -> list[str]:
        return [e.id for e in self.entries]

    def append(self, entry: Entry) -> "Ledger":
        """Return a new ledger with `entry` appended.

        This is the only growth operation; committed entries are never edited.
        """
        if entry.id in self:
            raise SchemaError(f"duplicate entry id '{entry.id}'", position=f"migration[{len(self.entries)}]", field="id")
        return replace(self, entries=self.entries + (entry,))


@dataclass(frozen=True)
class Tag:
    """A named fact produced by exactly one entry."""

    name: str
    payload: Payload
    produced_by: str


@dataclass(frozen=True)
class AppliedRecord:
    """Persisted record of executed entries and the tag snapshot."""

    applied_ids: tuple[str, ...] = ()
    tags: Mapping[str, Tag] = field(default_factory=dict)
    applied_at: datetime | None = None

    @property
    def last_applied(self) -> str | None:
        return self.applied_ids[-1] if self.applied_ids else None

    @property
    def tag_snapshot(self) -> dict[str, Payload]:
        return {name: tag.payload for name, tag in self.tags.items()}

    def is_applied(self, entry_id: str) -> bool:
        return entry_id in self.applied_ids

    def with_applied(self, entry_id: str, tags: Iterable[Tag], at: datetime) -> "AppliedRecord":
        """Return a copy grown by one applied entry and its emitted tags."""
        merged = dict(self.tags)
        for tag in tags:
            merged[tag.name] = tag
        return AppliedRecord(
            applied_ids=self.applied_ids + (entry_id,),
            tags=merged,
            applied_at=at,
        )
