from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from movie_shelf.models import SourceRecord

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.trakt.tv"
DEFAULT_TIMEOUT = 15.0
HISTORY_PAGE_SIZE = 100
USER_AGENT = "movie-shelf/0.1.0"


class TraktClient:
    """Asynchronous wrapper around the Trakt sync endpoints used for activity imports."""

    def __init__(
        self,
        client_id: str,
        access_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
            "trakt-api-version": "2",
            "trakt-api-key": client_id,
            "User-Agent": USER_AGENT,
        }
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get_history(self, *, page: int = 1, limit: int = HISTORY_PAGE_SIZE) -> list[dict[str, Any]]:
        params = {"page": page, "limit": limit, "extended": "metadata"}
        return await self._get_json("/sync/history", params=params)

    async def get_watchlist(self) -> list[dict[str, Any]]:
        return await self._get_json("/sync/watchlist", params={"extended": "metadata"})

    async def fetch_all_history(self, *, max_pages: int = 15) -> list[dict[str, Any]]:
        """Page through watch history until an empty page or ``max_pages``."""
        entries: list[dict[str, Any]] = []
        for page in range(1, max_pages + 1):
            batch = await self.get_history(page=page)
            if not batch:
                break
            entries.extend(batch)
        logger.debug("Fetched %d history entries", len(entries))
        return entries

    async def fetch_records(self, *, max_pages: int = 15) -> list[SourceRecord]:
        """History and watchlist entries normalized for reconciliation."""
        history = await self.fetch_all_history(max_pages=max_pages)
        watchlist = await self.get_watchlist()
        return history_to_records(history) + watchlist_to_records(watchlist)

    async def _get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        async for attempt in _retry_policy():
            with attempt:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                return response.json()
        raise RuntimeError(f"Unable to fetch {path} after retries")

    async def __aenter__(self) -> TraktClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()


def _media_from_entry(entry: Mapping[str, Any]) -> tuple[str, Mapping[str, Any]] | None:
    kind = entry.get("type")
    if kind == "movie" and isinstance(entry.get("movie"), Mapping):
        return "movie", entry["movie"]
    # Episodes are collected under their show.
    if kind in {"episode", "show"} and isinstance(entry.get("show"), Mapping):
        return "series", entry["show"]
    return None


def _to_record(
    media_type: str,
    media: Mapping[str, Any],
    *,
    date: Any,
    list_state: str | None,
) -> SourceRecord:
    ids = media.get("ids") or {}
    return SourceRecord(
        id=ids.get("trakt"),
        imdb_id=ids.get("imdb"),
        title=media.get("title"),
        year=media.get("year"),
        type=media_type,
        source="activity-service",
        date=date,
        list_state=list_state,
    )


def history_to_records(entries: Iterable[Mapping[str, Any]]) -> list[SourceRecord]:
    """Convert history entries into records, counting repeated watches as plays."""
    records: dict[str, SourceRecord] = {}
    plays: dict[str, int] = {}
    for entry in entries:
        media = _media_from_entry(entry)
        if media is None:
            continue
        media_type, payload = media
        ids = payload.get("ids") or {}
        identity = str(ids.get("imdb") or ids.get("trakt") or payload.get("title"))
        plays[identity] = plays.get(identity, 0) + 1
        # History is newest first; the first entry carries the latest watch date.
        if identity not in records:
            records[identity] = _to_record(
                media_type, payload, date=entry.get("watched_at"), list_state=None
            )
    return [
        record.model_copy(update={"plays": plays[identity]})
        for identity, record in records.items()
    ]


def watchlist_to_records(entries: Iterable[Mapping[str, Any]]) -> list[SourceRecord]:
    records: list[SourceRecord] = []
    for entry in entries:
        media = _media_from_entry(entry)
        if media is None:
            continue
        media_type, payload = media
        records.append(
            _to_record(media_type, payload, date=entry.get("listed_at"), list_state="watchlist")
        )
    return records


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def _retry_policy() -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=6),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )


__all__ = ["TraktClient", "history_to_records", "watchlist_to_records"]
