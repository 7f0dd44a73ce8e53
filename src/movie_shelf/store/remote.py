"""Redis-backed collection store for deployments without a writable filesystem."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from movie_shelf.errors import StoreUnavailable
from movie_shelf.models import MovieItem
from movie_shelf.store.base import CollectionStore, decode_snapshot, encode_snapshot, prepare_snapshot

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "movie-shelf"


class RemoteCollectionStore(CollectionStore):
    """Keeps one JSON document per user under ``<prefix>:collection:<user_id>``.

    Every save is a single ``SET`` so readers see either the previous or the new
    snapshot, never a mix.
    """

    name = "remote"

    def __init__(self, client: Any, *, prefix: str = DEFAULT_PREFIX) -> None:
        self._client = client
        self._prefix = prefix.rstrip(":")

    @classmethod
    def from_url(
        cls, redis_url: str, *, prefix: str = DEFAULT_PREFIX, timeout: float = 5.0
    ) -> RemoteCollectionStore:
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client, prefix=prefix)

    def key_for(self, user_id: str) -> str:
        return f"{self._prefix}:collection:{user_id}"

    async def load_all(self, user_id: str) -> list[MovieItem]:
        key = self.key_for(user_id)
        try:
            payload = await self._client.get(key)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis read failed for {key}: {exc}") from exc
        if not payload:
            return []
        return decode_snapshot(payload, origin=key)

    async def save_all(self, user_id: str, items: Sequence[MovieItem]) -> None:
        key = self.key_for(user_id)
        snapshot = prepare_snapshot(items)
        try:
            await self._client.set(key, encode_snapshot(snapshot))
        except RedisError as exc:
            raise StoreUnavailable(f"Redis write failed for {key}: {exc}") from exc
        logger.debug("Saved %d items to %s", len(snapshot), key)

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["RemoteCollectionStore"]
