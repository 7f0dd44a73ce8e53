from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MediaType = Literal["movie", "series"]
ListState = Literal["watched", "watchlist"]
Source = Literal["activity-service", "local", "manual"]

# Placeholder strings written by older syncs when a lookup came back empty.
UNKNOWN_SENTINELS = frozenset({"", "n/a", "unknown"})

METADATA_FIELDS: tuple[str, ...] = (
    "director",
    "actors",
    "plot",
    "genre",
    "runtime",
    "poster_url",
)
RATING_FIELDS: tuple[str, ...] = ("rating", "imdb_rating", "rt_rating", "metascore")
ENRICHABLE_FIELDS: tuple[str, ...] = METADATA_FIELDS + RATING_FIELDS


def is_unknown(value: Any) -> bool:
    """Return True when a metadata value is unset or an "unknown" placeholder."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in UNKNOWN_SENTINELS
    return False


def _coerce_year(value: Any) -> int | None:
    if value is None or isinstance(value, int):
        return value
    text = str(value).strip()[:4]
    try:
        return int(text)
    except ValueError:
        return None


def _coerce_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class BaseRecord(BaseModel):
    """Fields shared by persisted items and incoming source records."""

    id: str | int | None = None
    imdb_id: str | None = Field(default=None, alias="imdbId")
    title: str | None = None
    year: int | None = None
    type: MediaType = "movie"
    source: Source = "activity-service"
    date: datetime | None = None
    plays: int | None = None

    director: str | None = None
    actors: str | None = None
    plot: str | None = None
    genre: str | None = None
    runtime: str | None = None
    poster_url: str | None = Field(default=None, alias="posterUrl")
    rating: float | None = None
    imdb_rating: str | None = Field(default=None, alias="imdbRating")
    rt_rating: str | None = Field(default=None, alias="rtRating")
    metascore: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    @field_validator("imdb_id", mode="before")
    @classmethod
    def _blank_imdb_id(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("year", mode="before")
    @classmethod
    def _parse_year(cls, value: Any) -> int | None:
        return _coerce_year(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator("source", mode="before")
    @classmethod
    def _legacy_source(cls, value: Any) -> Any:
        if value == "trakt":
            return "activity-service"
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value in {"show", "episode", "tv"}:
            return "series"
        return value

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, value: Any) -> float | None:
        if is_unknown(value):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


class SourceRecord(BaseRecord):
    """A raw record as produced by the activity service or a manual add."""

    list_state: ListState | None = Field(default=None, alias="list")


class MovieItem(BaseRecord):
    """A single entry of a user's collection, as persisted."""

    title: str = Field(min_length=1)
    list_state: ListState | None = Field(default=None, alias="list")
    user_rating: float | None = Field(default=None, alias="userRating")
    user_note: str | None = Field(default=None, alias="userNote")

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
        frozen=True,
    )

    @property
    def on_watchlist(self) -> bool:
        return self.list_state == "watchlist"

    def missing_fields(self) -> list[str]:
        """Names of enrichable fields that are still unset or placeholders."""
        return [name for name in ENRICHABLE_FIELDS if is_unknown(getattr(self, name))]

    def to_storage(self) -> dict[str, Any]:
        """Serialize with the camelCase layout used on disk and in Redis."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SyncResult(BaseModel):
    """Outcome of a collection sync."""

    added: int = 0
    updated: int = 0
    skipped: int = 0
    enrichment_failed: int = 0
    remaining: int = 0
    total: int = 0


class ReEnrichResult(BaseModel):
    """Outcome of one enrichment batch over a stored partition."""

    enriched: int = 0
    failed: int = 0
    remaining: int = 0


class Recommendation(BaseModel):
    """A related title returned by the recommendation service."""

    tmdb_id: int
    title: str
    year: int | None = None
    poster_url: str | None = None
    rating: float | None = None
    overview: str | None = None

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }
