"""Metadata lookups against the OMDb API."""

from __future__ import annotations

from typing import Any, Protocol

import httpx

DEFAULT_BASE_URL = "https://www.omdbapi.com"
DEFAULT_TIMEOUT = 10.0

_FIELD_MAP = {
    "Director": "director",
    "Actors": "actors",
    "Plot": "plot",
    "Genre": "genre",
    "Runtime": "runtime",
    "Poster": "poster_url",
    "imdbRating": "imdb_rating",
    "Metascore": "metascore",
}


class MetadataClient(Protocol):
    """Boundary of the metadata service: a single lookup by IMDb id."""

    async def by_imdb_id(self, imdb_id: str) -> dict[str, Any] | None:
        """Return normalized metadata fields, or None when the title is unknown."""


class OmdbClient:
    """Thin asynchronous wrapper around OMDb's ``?i=<imdbId>`` lookup."""

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

    async def by_imdb_id(self, imdb_id: str) -> dict[str, Any] | None:
        response = await self._client.get(
            "/", params={"i": imdb_id, "apikey": self._api_key, "plot": "short"}
        )
        response.raise_for_status()
        payload = response.json()
        if str(payload.get("Response", "True")).lower() == "false":
            return None
        return parse_omdb_payload(payload)

    async def __aenter__(self) -> OmdbClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()


def parse_omdb_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Map an OMDb response onto MovieItem field names."""

    metadata: dict[str, Any] = {}
    for source_key, field in _FIELD_MAP.items():
        value = payload.get(source_key)
        if value not in (None, "", "N/A"):
            metadata[field] = value

    # The numeric rating mirrors the IMDb score so it can be sorted and averaged.
    imdb_rating = metadata.get("imdb_rating")
    if imdb_rating is not None:
        try:
            metadata["rating"] = float(imdb_rating)
        except ValueError:
            pass

    for entry in payload.get("Ratings") or []:
        if entry.get("Source") == "Rotten Tomatoes" and entry.get("Value"):
            metadata["rt_rating"] = entry["Value"]
        elif entry.get("Source") == "Metacritic" and "metascore" not in metadata:
            # "74/100" -> "74"
            metadata["metascore"] = str(entry.get("Value", "")).split("/")[0] or None

    return {key: value for key, value in metadata.items() if value is not None}


__all__ = ["MetadataClient", "OmdbClient", "parse_omdb_payload"]
