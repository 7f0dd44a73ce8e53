"""Enrichment service for filling metadata gaps from the metadata service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from movie_shelf.clients.omdb import MetadataClient
from movie_shelf.errors import EnrichmentFailed
from movie_shelf.models import ENRICHABLE_FIELDS, MovieItem, is_unknown

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class EnrichmentResult:
    item: MovieItem
    error: EnrichmentFailed | None = None
    filled: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.filled)


class MetadataEnricher:
    """Fills empty metadata and rating fields of a collection item.

    Only fields that are unset or hold an "unknown" placeholder are written;
    user-authored fields are never enrichment targets.
    """

    def __init__(
        self,
        client: MetadataClient,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency: int = 5,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._concurrency = max(concurrency, 1)

    async def enrich(self, item: MovieItem) -> EnrichmentResult:
        if not item.imdb_id:
            return EnrichmentResult(item)

        missing = item.missing_fields()
        if not missing:
            return EnrichmentResult(item)

        try:
            metadata = await asyncio.wait_for(
                self._client.by_imdb_id(item.imdb_id), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            return self._failed(item, f"timed out after {self._timeout:g}s")
        except Exception as exc:
            return self._failed(item, str(exc) or exc.__class__.__name__)

        if not metadata:
            logger.info("[ENRICH] No metadata for %s (%s)", item.title, item.imdb_id)
            return EnrichmentResult(item)

        update = _fill_missing(missing, metadata)
        if not update:
            return EnrichmentResult(item)

        logger.debug("[ENRICH] %s: filled %s", item.title, ", ".join(sorted(update)))
        return EnrichmentResult(item.model_copy(update=update), filled=tuple(sorted(update)))

    async def enrich_many(self, items: Sequence[MovieItem]) -> list[EnrichmentResult]:
        """Enrich items concurrently, bounded by the configured concurrency."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(item: MovieItem) -> EnrichmentResult:
            async with semaphore:
                return await self.enrich(item)

        return list(await asyncio.gather(*(_bounded(item) for item in items)))

    @staticmethod
    def _failed(item: MovieItem, reason: str) -> EnrichmentResult:
        error = EnrichmentFailed(item.imdb_id or "", reason)
        logger.warning("[ENRICH] %s", error)
        return EnrichmentResult(item, error=error)


def _fill_missing(missing: Sequence[str], metadata: dict[str, Any]) -> dict[str, Any]:
    update: dict[str, Any] = {}
    for field in missing:
        if field not in ENRICHABLE_FIELDS:
            continue
        value = metadata.get(field)
        if is_unknown(value):
            continue
        if field == "rating":
            try:
                value = float(value)
            except (TypeError, ValueError):
                continue
        update[field] = value
    return update


__all__ = ["EnrichmentResult", "MetadataEnricher"]
