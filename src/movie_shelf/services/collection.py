"""Operation surface for a user's collection.

``CollectionService`` wires the store, the reconciler, the enricher and the
query engine together. Every mutation is a read-modify-write of the whole
partition through the store's ``load_all``/``save_all`` contract.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from movie_shelf.clients import OmdbClient, TmdbClient, TraktClient
from movie_shelf.config import Settings
from movie_shelf.errors import MovieShelfError, NotFound
from movie_shelf.models import (
    ListState,
    MovieItem,
    ReEnrichResult,
    Recommendation,
    SourceRecord,
    SyncResult,
)
from movie_shelf.services import export as exporter
from movie_shelf.services.enrichment import EnrichmentResult, MetadataEnricher
from movie_shelf.services.identity import IdentityResolver, resolver as default_resolver
from movie_shelf.services.list_state import ListStateMachine
from movie_shelf.services.query import DEFAULT_PAGE_SIZE, QueryEngine
from movie_shelf.services.reconcile import Reconciler
from movie_shelf.store.base import CollectionStore
from movie_shelf.store.factory import build_store

logger = logging.getLogger(__name__)

MAX_USER_RATING = 10.0


class ActivitySource(Protocol):
    async def fetch_records(self, *, max_pages: int = ...) -> list[SourceRecord]:  # pragma: no cover - protocol
        ...


class Recommender(Protocol):
    async def recommendations(self, imdb_id: str) -> list[Recommendation]:  # pragma: no cover - protocol
        ...


class CollectionService:
    """Coordinates activity imports, enrichment and user edits for collection partitions."""

    def __init__(
        self,
        store: CollectionStore,
        *,
        activity: ActivitySource | None = None,
        enricher: MetadataEnricher | None = None,
        recommender: Recommender | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        enrichment_batch_size: int = 25,
        max_pages: int = 15,
        resolver: IdentityResolver | None = None,
    ) -> None:
        self._store = store
        self._activity = activity
        self._enricher = enricher
        self._recommender = recommender
        self._resolver = resolver or default_resolver
        self._reconciler = Reconciler(self._resolver)
        self._lists = ListStateMachine()
        self._query = QueryEngine(page_size=page_size)
        self._batch_size = max(enrichment_batch_size, 0)
        self._max_pages = max_pages
        self._clients: list[Any] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> CollectionService:
        """Build a service with every external client the settings have credentials for."""
        activity = None
        if settings.trakt_client_id and settings.trakt_access_token:
            activity = TraktClient(
                settings.trakt_client_id,
                settings.trakt_access_token,
                base_url=settings.trakt_api_url,
            )
        metadata = OmdbClient(settings.omdb_api_key) if settings.omdb_api_key else None
        recommender = TmdbClient(settings.tmdb_api_key) if settings.tmdb_api_key else None
        enricher = None
        if metadata is not None:
            enricher = MetadataEnricher(
                metadata,
                timeout=settings.enrichment_timeout,
                concurrency=settings.enrichment_concurrency,
            )

        service = cls(
            build_store(settings),
            activity=activity,
            enricher=enricher,
            recommender=recommender,
            page_size=settings.page_size,
            enrichment_batch_size=settings.enrichment_batch_size,
            max_pages=settings.trakt_max_pages,
        )
        service._clients = [client for client in (activity, metadata, recommender) if client is not None]
        return service

    async def close(self) -> None:
        for client in self._clients:
            await client.close()
        self._clients = []
        await self._store.close()

    async def __aenter__(self) -> CollectionService:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    @property
    def store(self) -> CollectionStore:
        return self._store

    @property
    def page_size(self) -> int:
        return self._query.page_size

    async def sync(self, user_id: str) -> SyncResult:
        """Import activity, reconcile it into the partition and enrich a batch of gaps.

        Activity-service failures propagate before anything is loaded or written.
        """
        if self._activity is None:
            raise MovieShelfError("Activity service is not configured")

        records = await self._activity.fetch_records(max_pages=self._max_pages)
        existing = await self._store.load_all(user_id)
        outcome = self._reconciler.reconcile(existing, records)

        items = outcome.items
        failed = 0
        remaining = len(outcome.pending)
        if self._enricher is not None and outcome.pending:
            batch = outcome.pending[: self._batch_size]
            remaining = len(outcome.pending) - len(batch)
            items, _, failed = await self._enrich_keys(items, batch)

        await self._store.save_all(user_id, items)
        result = SyncResult(
            added=outcome.added,
            updated=outcome.updated,
            skipped=outcome.skipped,
            enrichment_failed=failed,
            remaining=remaining,
            total=len(items),
        )
        logger.info(
            "Synced %s: %d added, %d updated, %d skipped, %d enrichment failures, %d awaiting enrichment",
            user_id,
            result.added,
            result.updated,
            result.skipped,
            result.enrichment_failed,
            result.remaining,
        )
        return result

    async def set_list_state(self, user_id: str, key: str, state: ListState) -> MovieItem:
        items, index = await self._locate(user_id, key)
        current = items[index]
        updated = self._lists.set_state(current, state)
        if updated is not current:
            items[index] = updated
            await self._store.save_all(user_id, items)
        return updated

    async def set_user_edit(
        self,
        user_id: str,
        key: str,
        *,
        rating: float | None = None,
        note: str | None = None,
    ) -> MovieItem:
        """Update the user's rating and/or note; ``0`` or an empty note clears the field."""
        if rating is not None and not 0 <= rating <= MAX_USER_RATING:
            raise ValueError(f"Rating must be between 0 and {MAX_USER_RATING:g}")

        items, index = await self._locate(user_id, key)
        update: dict[str, Any] = {}
        if rating is not None:
            update["user_rating"] = rating or None
        if note is not None:
            update["user_note"] = note.strip() or None
        if not update:
            return items[index]

        items[index] = items[index].model_copy(update=update)
        await self._store.save_all(user_id, items)
        return items[index]

    async def query_page(
        self,
        user_id: str,
        sort_key: str = "title",
        page: int = 1,
        *,
        list_state: ListState | None = None,
    ) -> list[MovieItem]:
        items = await self._store.load_all(user_id)
        return self._query.query(items, sort_key, page, list_state=list_state)

    async def page_count(self, user_id: str, *, list_state: ListState | None = None) -> int:
        items = await self._store.load_all(user_id)
        return self._query.page_count(items, list_state=list_state)

    async def get_item(self, user_id: str, key: str) -> MovieItem:
        items, index = await self._locate(user_id, key)
        return items[index]

    async def remove_local(self, user_id: str, key: str) -> None:
        if not await self._store.remove(user_id, key):
            raise NotFound(key)
        logger.info("Removed %s from %s", key, user_id)

    async def add_local(
        self,
        user_id: str,
        record: SourceRecord | Mapping[str, Any],
        *,
        source: str = "local",
    ) -> MovieItem:
        """Add (or merge) a hand-entered record and enrich it right away when possible."""
        data = record.model_dump(exclude_unset=True) if isinstance(record, SourceRecord) else dict(record)
        data.setdefault("source", source)
        try:
            incoming = SourceRecord.model_validate(data)
        except ValidationError as exc:
            raise ValueError(exc.errors()[0]["msg"]) from exc
        if not incoming.title:
            raise ValueError("Title is required")
        key = self._resolver.key(incoming)

        existing = await self._store.load_all(user_id)
        outcome = self._reconciler.reconcile(existing, [incoming])
        items = outcome.items
        # An id-only record may have landed on an IMDb-keyed item.
        index = self._resolver.find(items, key)
        if index is None:
            raise NotFound(key)
        stored_key = self._resolver.key(items[index])
        if stored_key in outcome.pending:
            items, _, _ = await self._enrich_keys(items, [stored_key])

        await self._store.save_all(user_id, items)
        return items[index]

    async def re_enrich(self, user_id: str, batch_size: int | None = None) -> ReEnrichResult:
        """Enrich up to ``batch_size`` stored items that still have metadata gaps."""
        if self._enricher is None:
            raise MovieShelfError("Metadata service is not configured")

        items = await self._store.load_all(user_id)
        candidates = [
            self._resolver.key(item) for item in items if item.imdb_id and item.missing_fields()
        ]
        limit = self._batch_size if batch_size is None else max(batch_size, 0)
        batch = candidates[:limit]
        if not batch:
            return ReEnrichResult(remaining=len(candidates))

        items, enriched, failed = await self._enrich_keys(items, batch)
        if enriched:
            await self._store.save_all(user_id, items)
        logger.info("Re-enriched %d of %d items for %s (%d failed)", enriched, len(batch), user_id, failed)
        return ReEnrichResult(enriched=enriched, failed=failed, remaining=len(candidates) - len(batch))

    async def cleanup(self, user_id: str) -> int:
        """Drop duplicate keys left by older writers; returns how many records were removed."""
        items = await self._store.load_all(user_id)
        unique = self._resolver.dedupe(items)
        removed = len(items) - len(unique)
        if removed:
            await self._store.save_all(user_id, unique)
            logger.info("Removed %d duplicate records from %s", removed, user_id)
        return removed

    async def export(self, user_id: str, fmt: str = "json") -> str:
        items = await self._store.load_all(user_id)
        return exporter.render(self._resolver.dedupe(items), fmt)

    async def random_item(
        self,
        user_id: str,
        *,
        list_state: ListState | None = None,
        rng: random.Random | None = None,
    ) -> MovieItem:
        """Pick one item at random, optionally only from the watchlist or watched items."""
        items = await self._store.load_all(user_id)
        candidates = self._query.filter(self._resolver.dedupe(items), list_state)
        if not candidates:
            raise MovieShelfError("No items to pick from")
        return (rng or random).choice(candidates)

    async def recommendations(self, imdb_id: str) -> list[Recommendation]:
        if self._recommender is None:
            raise MovieShelfError("Recommendation service is not configured")
        return await self._recommender.recommendations(imdb_id)

    async def _locate(self, user_id: str, key: str) -> tuple[list[MovieItem], int]:
        items = await self._store.load_all(user_id)
        index = self._resolver.find(items, key)
        if index is None:
            raise NotFound(key)
        return items, index

    async def _enrich_keys(
        self, items: Sequence[MovieItem], keys: Sequence[str]
    ) -> tuple[list[MovieItem], int, int]:
        """Enrich the items addressed by ``keys``; returns (items, enriched, failed)."""
        if self._enricher is None:
            return list(items), 0, 0
        wanted = set(keys)
        targets = [item for item in items if self._resolver.key(item) in wanted]
        results: list[EnrichmentResult] = await self._enricher.enrich_many(targets)

        by_key = {self._resolver.key(result.item): result.item for result in results if result.changed}
        merged = [by_key.get(self._resolver.key(item), item) for item in items]
        failed = sum(1 for result in results if result.error is not None)
        return merged, len(by_key), failed


__all__ = ["ActivitySource", "CollectionService", "Recommender"]
