"""Tests for the runtime tag registry."""

from __future__ import annotations

import pytest

from strata.errors import DuplicateTagError, InvalidPayloadError, TagNotFoundError
from strata.models import AppliedRecord, Tag
from strata.registry import TagRegistry


@pytest.fixture
def registry() -> TagRegistry:
    record = AppliedRecord(applied_ids=("0000-origin",), tags={"root": Tag("root", {"name": "world"}, "0000-origin")})
    return TagRegistry.from_record(record)


def test_resolve_seeded_tag(registry: TagRegistry) -> None:
    assert registry.resolve("root") == {"name": "world"}
    assert "root" in registry


def test_resolve_unknown_tag(registry: TagRegistry) -> None:
    with pytest.raises(TagNotFoundError) as exc_info:
        registry.resolve("terrain")
    assert isinstance(exc_info.value, KeyError)
    assert "terrain" in str(exc_info.value)


def test_emit_rejects_name_from_snapshot(registry: TagRegistry) -> None:
    with pytest.raises(DuplicateTagError) as exc_info:
        registry.emit("root", None, "0001-terrain")
    assert exc_info.value.first_producer == "0000-origin"
    assert exc_info.value.entry_id == "0001-terrain"


def test_emit_rejects_name_from_this_run(registry: TagRegistry) -> None:
    registry.emit("terrain", [1, 2, 3], "0001-terrain")
    with pytest.raises(DuplicateTagError):
        registry.emit("terrain", [4], "0002-other")
    assert registry.resolve("terrain") == [1, 2, 3]


@pytest.mark.parametrize("payload", [{1, 2}, float("nan"), {"key": object()}, {3: "int key"}])
def test_emit_rejects_non_json_payloads(registry: TagRegistry, payload) -> None:
    with pytest.raises(InvalidPayloadError):
        registry.emit("bad", payload, "0001-terrain")
    assert "bad" not in registry


def test_view_is_read_only_snapshot(registry: TagRegistry) -> None:
    view = registry.view()
    registry.emit("terrain", {"size": 512}, "0001-terrain")

    assert "terrain" not in view
    assert view["root"] == {"name": "world"}
    assert view.producer("root") == "0000-origin"
    assert len(view) == 1
    with pytest.raises(TypeError):
        view["terrain"] = 1  # type: ignore[index]
    with pytest.raises(TagNotFoundError):
        view.resolve("terrain")


def test_discard_from_drops_only_that_producer(registry: TagRegistry) -> None:
    registry.emit("terrain", None, "0001-terrain")
    registry.emit("water", None, "0001-terrain")
    registry.emit("sidewalks", None, "0002-sidewalks")

    assert {t.name for t in registry.emitted_by("0001-terrain")} == {"terrain", "water"}
    registry.discard_from("0001-terrain")

    assert "terrain" not in registry
    assert "water" not in registry
    assert "sidewalks" in registry
    assert "root" in registry
