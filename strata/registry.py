"""
Runtime tag registry.

Maps tag name -> (payload, producing entry). Seeded from the persisted
snapshot when a run starts and grown in place as migrations emit tags.
Migration bodies only ever see a read-only TagView.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Iterator

from .errors import DuplicateTagError, InvalidPayloadError, TagNotFoundError
from .models import AppliedRecord, Payload, Tag, check_payload


class TagView(Mapping):
    """Read-only view of the tags resolvable at one point in a run."""

    def __init__(self, tags: Mapping[str, Tag]):
        self._tags = dict(tags)

    def __getitem__(self, name: str) -> Payload:
        return self.resolve(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def resolve(self, name: str) -> Payload:
        tag = self._tags.get(name)
        if tag is None:
            raise TagNotFoundError(name)
        return tag.payload

    def producer(self, name: str) -> str:
        tag = self._tags.get(name)
        if tag is None:
            raise TagNotFoundError(name)
        return tag.produced_by

    def __repr__(self) -> str:
        return f"TagView({sorted(self._tags)})"


class TagRegistry:
    """Tag name -> Tag mapping with write-once semantics."""

    def __init__(self, tags: Mapping[str, Tag] | None = None):
        self._tags: dict[str, Tag] = dict(tags or {})

    @classmethod
    def from_record(cls, record: AppliedRecord) -> "TagRegistry":
        return cls(record.tags)

    def __contains__(self, name: object) -> bool:
        return name in self._tags

    def __len__(self) -> int:
        return len(self._tags)

    def resolve(self, name: str) -> Payload:
        tag = self._tags.get(name)
        if tag is None:
            raise TagNotFoundError(name)
        return tag.payload

    def get(self, name: str) -> Tag | None:
        return self._tags.get(name)

    def emit(self, name: str, payload: Payload, producer_id: str) -> Tag:
        """Record a new tag.

        Raises:
            DuplicateTagError: the name already exists, from a prior run or this one
            InvalidPayloadError: the payload is not a JSON-like value
        """
        existing = self._tags.get(name)
        if existing is not None:
            raise DuplicateTagError(
                f"Tag '{name}' was already emitted by '{existing.produced_by}'",
                entry_id=producer_id,
                tag=name,
                first_producer=existing.produced_by,
            )
        try:
            check_payload(payload)
        except InvalidPayloadError as exc:
            raise InvalidPayloadError(f"tag '{name}': {exc}") from exc

        tag = Tag(name=name, payload=payload, produced_by=producer_id)
        self._tags[name] = tag
        return tag

    def emitted_by(self, producer_id: str) -> list[Tag]:
        return [t for t in self._tags.values() if t.produced_by == producer_id]

    def discard_from(self, producer_id: str, *, keep: Mapping[str, Tag] | None = None) -> None:
        """Drop tags emitted by `producer_id`, except those present in `keep`."""
        keep = keep or {}
        for name in [n for n, t in self._tags.items() if t.produced_by == producer_id and n not in keep]:
            del self._tags[name]

    def view(self) -> TagView:
        """Snapshot of currently resolvable tags."""
        return TagView(self._tags)

    def snapshot(self) -> dict[str, Tag]:
        return dict(self._tags)
