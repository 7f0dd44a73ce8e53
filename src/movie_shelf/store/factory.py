from __future__ import annotations

import logging

from movie_shelf.config import Settings
from movie_shelf.store.base import CollectionStore
from movie_shelf.store.local import LocalCollectionStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> CollectionStore:
    """Select the collection backend once, from configuration."""

    if settings.redis_url:
        from movie_shelf.store.remote import RemoteCollectionStore

        logger.info("Using remote collection store (prefix=%s)", settings.redis_prefix)
        return RemoteCollectionStore.from_url(settings.redis_url, prefix=settings.redis_prefix)

    logger.info("Using local collection store at %s", settings.data_dir)
    return LocalCollectionStore(settings.data_dir)


__all__ = ["build_store"]
