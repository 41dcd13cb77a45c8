"""
Ledger document persistence.

The ledger document is TOML:

    [meta]            schema_version
    [applied]         last_applied, applied_at, ids, tags.<name>.{producer,payload}
    [[migration]]     id, type, source, depends, emits, removes, description

LedgerStore is the only component that writes ledger state. Saves are atomic:
the document is written to a temporary file beside the target and moved into
place with os.replace, so a crash never leaves a half-written ledger.

Every save re-renders the whole document from the parsed model. Comments are
not preserved and tag lists are written sorted, so the first commit after a
hand edit shows up as a reformatting diff.
"""

from __future__ import annotations

import json
import os
import tempfile
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any

import tomli_w

from .errors import InvalidPayloadError, SchemaError
from .models import SCHEMA_VERSION, AppliedRecord, Entry, EntryKind, Ledger, Tag, check_payload, entry_ordinal

_KINDS = {k.value: k for k in EntryKind}


def _string(value: Any, *, position: str, field: str, required: bool = True) -> str:
    if value is None:
        if required:
            raise SchemaError("required field is missing", position=position, field=field)
        return ""
    if not isinstance(value, str):
        raise SchemaError(f"expected a string, got {type(value).__name__}", position=position, field=field)
    return value


def _name_set(value: Any, *, position: str, field: str) -> frozenset[str]:
    """Parse a list of tag names. Absence means the empty set."""
    if value is None:
        return frozenset()
    if not isinstance(value, list):
        raise SchemaError(f"expected a list, got {type(value).__name__}", position=position, field=field)

    names: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise SchemaError(f"tag names must be non-empty strings, got {item!r}", position=position, field=field)
        if item in names:
            raise SchemaError(f"tag '{item}' listed twice", position=position, field=field)
        names.append(item)
    return frozenset(names)


def _parse_entry(raw: Any, index: int) -> Entry:
    position = f"migration[{index}]"
    if not isinstance(raw, dict):
        raise SchemaError("migration record must be a table", position=position)

    entry_id = _string(raw.get("id"), position=position, field="id").strip()
    if not entry_id:
        raise SchemaError("id must not be empty", position=position, field="id")
    if entry_ordinal(entry_id) is None:
        raise SchemaError(f"id '{entry_id}' carries no numeric ordering hint", position=position, field="id")

    kind_raw = _string(raw.get("type"), position=position, field="type").strip().lower()
    kind = _KINDS.get(kind_raw)
    if kind is None:
        raise SchemaError(
            f"unknown type '{kind_raw}' (expected one of: {', '.join(_KINDS)})",
            position=position,
            field="type",
        )

    source = _string(raw.get("source"), position=position, field="source", required=kind is not EntryKind.REMOVE)
    removes = _name_set(raw.get("removes"), position=position, field="removes")
    if removes and kind is EntryKind.SCRIPT:
        raise SchemaError("removes is only allowed on remove and asset entries", position=position, field="removes")

    return Entry(
        id=entry_id,
        kind=kind,
        source=source,
        depends=_name_set(raw.get("depends"), position=position, field="depends"),
        emits=_name_set(raw.get("emits"), position=position, field="emits"),
        removes=removes,
        description=_string(raw.get("description"), position=position, field="description", required=False),
    )


def _parse_applied_at(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise SchemaError(f"invalid timestamp {value!r}", position="applied", field="applied_at")


def _parse_applied(raw: Any) -> AppliedRecord:
    if raw is None:
        return AppliedRecord()
    if not isinstance(raw, dict):
        raise SchemaError("applied must be a table", position="applied")

    ids_raw = raw.get("ids", [])
    if not isinstance(ids_raw, list) or not all(isinstance(i, str) and i for i in ids_raw):
        raise SchemaError("ids must be a list of entry ids", position="applied", field="ids")
    if len(set(ids_raw)) != len(ids_raw):
        raise SchemaError("ids lists an entry more than once", position="applied", field="ids")

    last_applied = raw.get("last_applied")
    if last_applied not in (None, ""):
        expected = ids_raw[-1] if ids_raw else None
        if last_applied != expected:
            raise SchemaError(
                f"last_applied '{last_applied}' does not match the final applied id '{expected}'",
                position="applied",
                field="last_applied",
            )

    tags_raw = raw.get("tags", {})
    if not isinstance(tags_raw, dict):
        raise SchemaError("tags must be a table", position="applied", field="tags")

    tags: dict[str, Tag] = {}
    for name, tag_raw in tags_raw.items():
        position = f"applied.tags.{name}"
        if not isinstance(tag_raw, dict):
            raise SchemaError("tag record must be a table", position=position)
        producer = _string(tag_raw.get("producer"), position=position, field="producer")
        payload_text = _string(tag_raw.get("payload", "null"), position=position, field="payload")
        try:
            payload = json.loads(payload_text)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"payload is not valid JSON ({exc.msg})", position=position, field="payload") from exc
        tags[name] = Tag(name=name, payload=payload, produced_by=producer)

    return AppliedRecord(
        applied_ids=tuple(ids_raw),
        tags=tags,
        applied_at=_parse_applied_at(raw.get("applied_at")),
    )


def parse_document(data: dict[str, Any]) -> tuple[Ledger, AppliedRecord]:
    """Build the in-memory model from a decoded ledger document."""
    meta = data.get("meta")
    if not isinstance(meta, dict):
        raise SchemaError("metadata block is missing", position="meta")
    version = meta.get("schema_version")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise SchemaError("schema_version must be a positive integer", position="meta", field="schema_version")
    if version > SCHEMA_VERSION:
        raise SchemaError(
            f"schema_version {version} is newer than supported version {SCHEMA_VERSION}",
            position="meta",
            field="schema_version",
        )

    records = data.get("migration", [])
    if not isinstance(records, list):
        raise SchemaError("migration must be an array of tables", position="migration")

    entries: list[Entry] = []
    seen: set[str] = set()
    for index, raw in enumerate(records):
        entry = _parse_entry(raw, index)
        if entry.id in seen:
            raise SchemaError(f"duplicate entry id '{entry.id}'", position=f"migration[{index}]", field="id")
        seen.add(entry.id)
        entries.append(entry)

    ledger = Ledger(entries=tuple(entries), schema_version=version)
    return ledger, _parse_applied(data.get("applied"))


def _entry_to_dict(entry: Entry) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": entry.id,
        "type": entry.kind.value,
        "source": entry.source,
        "depends": sorted(entry.depends),
        "emits": sorted(entry.emits),
    }
    if entry.removes:
        record["removes"] = sorted(entry.removes)
    record["description"] = entry.description
    return record


def _encode_payload(tag: Tag) -> str:
    try:
        check_payload(tag.payload)
    except InvalidPayloadError as exc:
        raise InvalidPayloadError(f"tag '{tag.name}': {exc}") from exc
    return json.dumps(tag.payload, ensure_ascii=False, separators=(",", ":"))


def render_document(ledger: Ledger, record: AppliedRecord) -> str:
    """Serialize the model to TOML text."""
    applied: dict[str, Any] = {
        "last_applied": record.last_applied or "",
        "applied_at": record.applied_at.isoformat() if record.applied_at else "",
        "ids": list(record.applied_ids),
        "tags": {
            name: {"producer": tag.produced_by, "payload": _encode_payload(tag)}
            for name, tag in record.tags.items()
        },
    }
    document: dict[str, Any] = {
        "meta": {"schema_version": ledger.schema_version},
        "applied": applied,
        "migration": [_entry_to_dict(e) for e in ledger.entries],
    }
    return tomli_w.dumps(document)


class LedgerStore:
    """Loads and atomically persists a ledger document."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> tuple[Ledger, AppliedRecord]:
        """Parse the ledger document.

        Raises:
            FileNotFoundError: the document does not exist
            SchemaError: the document is malformed (nothing is returned)
        """
        raw = self.path.read_bytes()
        try:
            data = tomllib.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise SchemaError(f"not valid UTF-8 ({exc})") from exc
        except tomllib.TOMLDecodeError as exc:
            raise SchemaError(f"not a valid TOML document ({exc})") from exc
        return parse_document(data)

    def save(self, ledger: Ledger, record: AppliedRecord) -> None:
        """Write the ledger and applied record atomically."""
        text = render_document(ledger, record)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, self.path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise


def load_ledger(path: Path) -> tuple[Ledger, AppliedRecord]:
    """Load a ledger document from `path`."""
    return LedgerStore(path).load()
