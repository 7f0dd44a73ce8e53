from __future__ import annotations

import logging
from typing import Any

import httpx

from movie_shelf.models import Recommendation

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.themoviedb.org/3"
DEFAULT_TIMEOUT = 10.0
POSTER_BASE_URL = "https://image.tmdb.org/t/p/w342"
SIMILAR_LIMIT = 10
RECOMMENDED_LIMIT = 8


class TmdbClient:
    """Recommendation lookups keyed by IMDb id."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def find_tmdb_id(self, imdb_id: str) -> int | None:
        payload = await self._get_json(f"/find/{imdb_id}", external_source="imdb_id")
        if payload is None:
            return None
        results = payload.get("movie_results") or []
        return results[0].get("id") if results else None

    async def similar(self, imdb_id: str) -> list[Recommendation]:
        return await self._related(imdb_id, "similar", SIMILAR_LIMIT)

    async def recommended(self, imdb_id: str) -> list[Recommendation]:
        return await self._related(imdb_id, "recommendations", RECOMMENDED_LIMIT)

    async def recommendations(self, imdb_id: str) -> list[Recommendation]:
        """Recommended titles, falling back to similar titles when there are none."""
        movies = await self.recommended(imdb_id)
        if not movies:
            movies = await self.similar(imdb_id)
        return movies

    async def _related(self, imdb_id: str, endpoint: str, limit: int) -> list[Recommendation]:
        tmdb_id = await self.find_tmdb_id(imdb_id)
        if tmdb_id is None:
            logger.info("No TMDb match for %s", imdb_id)
            return []
        payload = await self._get_json(f"/movie/{tmdb_id}/{endpoint}", language="en-US", page=1)
        if payload is None:
            return []
        return [_to_recommendation(entry) for entry in (payload.get("results") or [])[:limit]]

    async def _get_json(self, path: str, **params: Any) -> dict[str, Any] | None:
        response = await self._client.get(path, params={"api_key": self._api_key, **params})
        if response.status_code >= 400:
            logger.warning("TMDb request %s failed: %s", path, response.status_code)
            return None
        return response.json()

    async def __aenter__(self) -> TmdbClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()


def _to_recommendation(entry: dict[str, Any]) -> Recommendation:
    release_date = entry.get("release_date") or ""
    poster_path = entry.get("poster_path")
    return Recommendation(
        tmdb_id=entry["id"],
        title=entry.get("title") or entry.get("name") or "Untitled",
        year=int(release_date[:4]) if release_date[:4].isdigit() else None,
        poster_url=f"{POSTER_BASE_URL}{poster_path}" if poster_path else None,
        rating=entry.get("vote_average"),
        overview=entry.get("overview") or None,
    )


__all__ = ["TmdbClient"]
