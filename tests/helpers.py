"""Ledger builders and fakes shared by the test modules."""

from __future__ import annotations

from typing import Any

from strata.models import Entry, EntryKind


def script(entry_id: str, depends=(), emits=(), **kwargs: Any) -> Entry:
    """Build a script entry."""
    return Entry(
        id=entry_id,
        kind=EntryKind.SCRIPT,
        source=kwargs.pop("source", f"migrations/{entry_id}.lua"),
        depends=frozenset(depends),
        emits=frozenset(emits),
        **kwargs,
    )


ORIGIN = script("0000-origin", emits={"root"}, description="Project origin")
TERRAIN = script("0001-terrain", depends={"root"}, emits={"terrain"})
SIDEWALKS = script("0002-sidewalks", depends={"terrain"}, emits={"sidewalks"})
TREES = script("0003-trees", depends={"terrain", "sidewalks"}, emits={"trees"})

SCENARIO_ORDER = [ORIGIN.id, TERRAIN.id, SIDEWALKS.id, TREES.id]


class FakeInvoker:
    """Records invocations; can fail or emit payloads per entry."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.seen_tags: dict[str, dict[str, Any]] = {}
        self.fail_on: dict[str, BaseException] = {}
        self.payloads: dict[str, dict[str, Any]] = {}

    def __call__(self, entry, tags, emit):
        self.calls.append(entry.id)
        self.seen_tags[entry.id] = dict(tags)
        if entry.id in self.fail_on:
            raise self.fail_on[entry.id]
        for name, payload in self.payloads.get(entry.id, {}).items():
            emit(name, payload)
        return None


SCENARIO_TOML = """\
[meta]
schema_version = 1

[[migration]]
id = "0003-trees"
type = "script"
source = "migrations/0003_trees.lua"
depends = ["terrain", "sidewalks"]
emits = ["trees"]
description = "Plant trees along the sidewalks"

[[migration]]
id = "0000-origin"
type = "script"
source = "migrations/0000_origin.lua"
emits = ["root"]
description = "Project origin"

[[migration]]
id = "0002-sidewalks"
type = "script"
source = "migrations/0002_sidewalks.lua"
depends = ["terrain"]
emits = ["sidewalks"]

[[migration]]
id = "0001-terrain"
type = "script"
source = "migrations/0001_terrain.lua"
depends = ["root"]
emits = ["terrain"]
"""
