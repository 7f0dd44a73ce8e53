from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

from movie_shelf.errors import InvalidIdentity
from movie_shelf.models import BaseRecord

RecordT = TypeVar("RecordT", bound=BaseRecord)


class IdentityResolver:
    """Computes the canonical key used to address a record within a partition."""

    def key(self, record: BaseRecord) -> str:
        if record.imdb_id:
            return record.imdb_id
        if record.id is None or str(record.id).strip() == "":
            raise InvalidIdentity(f"Record {record.title or '<untitled>'!r} has no imdbId or id")
        return str(record.id).strip()

    def id_key(self, record: BaseRecord) -> str | None:
        """Source-id form of the key, used to detect deferred identity upgrades."""
        if record.id is None:
            return None
        text = str(record.id).strip()
        return text or None

    def is_upgrade(self, existing: BaseRecord, incoming: BaseRecord) -> bool:
        """True when ``incoming`` supplies the IMDb id an id-keyed record was missing."""
        return (
            not existing.imdb_id
            and bool(incoming.imdb_id)
            and self.id_key(existing) is not None
            and self.id_key(existing) == self.id_key(incoming)
        )

    def dedupe(self, items: Iterable[RecordT]) -> list[RecordT]:
        """Keep the last record for each key, in order of first appearance."""
        by_key: dict[str, RecordT] = {}
        for item in items:
            by_key[self.key(item)] = item
        return list(by_key.values())

    def find(self, items: Sequence[RecordT], key: str) -> int | None:
        """Index of the record addressed by ``key``; source ids are accepted as a fallback."""
        key = key.strip()
        for index, item in enumerate(items):
            if self.key(item) == key:
                return index
        for index, item in enumerate(items):
            if self.id_key(item) == key:
                return index
        return None


resolver = IdentityResolver()


__all__ = ["IdentityResolver", "resolver"]
