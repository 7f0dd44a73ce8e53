"""Storage abstraction for per-user collections."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import ValidationError

from movie_shelf.errors import StoreUnavailable
from movie_shelf.models import MovieItem
from movie_shelf.services.identity import resolver

logger = logging.getLogger(__name__)


class CollectionStore(ABC):
    """Load/save contract for a user partition, with derived single-item helpers.

    Writes replace the whole partition snapshot. Two concurrent read-modify-write
    sequences on the same partition resolve as last-writer-wins.
    """

    name: str = "base"

    @abstractmethod
    async def load_all(self, user_id: str) -> list[MovieItem]:
        """Return the partition's items in stored order (empty when never saved)."""

    @abstractmethod
    async def save_all(self, user_id: str, items: Sequence[MovieItem]) -> None:
        """Atomically replace the partition's items."""

    async def close(self) -> None:
        return None

    async def get(self, user_id: str, key: str) -> MovieItem | None:
        items = await self.load_all(user_id)
        index = resolver.find(items, key)
        return items[index] if index is not None else None

    async def upsert(self, user_id: str, item: MovieItem) -> MovieItem:
        items = await self.load_all(user_id)
        key = resolver.key(item)
        replaced = False
        for index, current in enumerate(items):
            if resolver.key(current) == key:
                items[index] = item
                replaced = True
                break
        if not replaced:
            items.append(item)
        await self.save_all(user_id, items)
        return item

    async def remove(self, user_id: str, key: str) -> bool:
        items = await self.load_all(user_id)
        index = resolver.find(items, key)
        if index is None:
            return False
        del items[index]
        await self.save_all(user_id, items)
        return True

    async def __aenter__(self) -> CollectionStore:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()


def prepare_snapshot(items: Iterable[MovieItem]) -> list[MovieItem]:
    """Dedupe by canonical key so a saved partition never holds two records per key."""
    return resolver.dedupe(items)


def encode_snapshot(items: Sequence[MovieItem]) -> str:
    return json.dumps([item.to_storage() for item in items], ensure_ascii=False, indent=2)


def decode_snapshot(payload: str | bytes, *, origin: str) -> list[MovieItem]:
    """Parse a stored snapshot; corrupt payloads are reported, never treated as empty."""
    try:
        raw: Any = json.loads(payload)
    except ValueError as exc:
        raise StoreUnavailable(f"Collection at {origin} is not valid JSON") from exc

    if not isinstance(raw, list):
        raise StoreUnavailable(f"Collection at {origin} is not a list of items")

    items: list[MovieItem] = []
    for entry in raw:
        try:
            items.append(MovieItem.model_validate(entry))
        except ValidationError as exc:
            # Entries without a title can't be displayed or keyed reliably.
            logger.warning("Dropping unreadable item in %s: %s", origin, exc.errors()[0]["msg"])
    return items


__all__ = ["CollectionStore", "decode_snapshot", "encode_snapshot", "prepare_snapshot"]
