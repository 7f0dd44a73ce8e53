from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Literal

from movie_shelf.models import ListState, MovieItem
from movie_shelf.services.identity import resolver

SortKey = Literal["title", "year", "date"]
SORT_KEYS: tuple[str, ...] = ("title", "year", "date")
DEFAULT_PAGE_SIZE = 50


class QueryEngine:
    """Sorted, paginated views over a collection snapshot."""

    def __init__(self, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size

    def query(
        self,
        collection: Sequence[MovieItem],
        sort_key: str = "title",
        page: int = 1,
        *,
        list_state: ListState | None = None,
    ) -> list[MovieItem]:
        """Return one 1-indexed page; pages outside the collection are empty."""
        if page < 1:
            return []
        items = self.sort(self.filter(resolver.dedupe(collection), list_state), sort_key)
        start = (page - 1) * self.page_size
        return items[start : start + self.page_size]

    def page_count(self, collection: Sequence[MovieItem], *, list_state: ListState | None = None) -> int:
        total = len(self.filter(resolver.dedupe(collection), list_state))
        return math.ceil(total / self.page_size)

    @staticmethod
    def filter(items: list[MovieItem], list_state: ListState | None) -> list[MovieItem]:
        if list_state == "watchlist":
            return [item for item in items if item.on_watchlist]
        if list_state == "watched":
            return [item for item in items if not item.on_watchlist]
        return items

    @staticmethod
    def sort(items: list[MovieItem], sort_key: str) -> list[MovieItem]:
        # Title order is the tie-breaker for every sort.
        by_title = sorted(items, key=lambda item: item.title.casefold())
        if sort_key == "year":
            # Stable sorts: items without a year keep title order at the end.
            dated = [item for item in by_title if item.year is not None]
            undated = [item for item in by_title if item.year is None]
            return sorted(dated, key=lambda item: item.year, reverse=True) + undated
        if sort_key == "date":
            stamped = [(item.date.timestamp(), item) for item in by_title if item.date is not None]
            undated = [item for item in by_title if item.date is None]
            stamped.sort(key=lambda pair: pair[0], reverse=True)
            return [item for _, item in stamped] + undated
        return by_title


def query(
    collection: Sequence[MovieItem],
    sort_key: str = "title",
    page: int = 1,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[MovieItem]:
    return QueryEngine(page_size=page_size).query(collection, sort_key, page)


__all__ = ["DEFAULT_PAGE_SIZE", "QueryEngine", "SORT_KEYS", "SortKey", "query"]
