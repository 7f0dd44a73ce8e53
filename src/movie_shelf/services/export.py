"""Export a collection partition as JSON or CSV."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Literal

from movie_shelf.models import MovieItem

ExportFormat = Literal["json", "csv"]
EXPORT_FORMATS: tuple[str, ...] = ("json", "csv")

CSV_HEADER = [
    "Title",
    "Year",
    "Type",
    "IMDB ID",
    "IMDB Rating",
    "Genre",
    "Director",
    "Runtime",
    "Watch Date",
    "List",
    "User Rating",
    "User Note",
]


def export_filename(fmt: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).date().isoformat()
    return f"movie-shelf-export-{stamp}.{fmt}"


def build_export_document(items: Sequence[MovieItem], now: datetime | None = None) -> dict[str, Any]:
    """Summary counts plus one flattened entry per item."""
    exported_at = now or datetime.now(timezone.utc)
    return {
        "exportDate": exported_at.isoformat(),
        "totalItems": len(items),
        "movies": sum(1 for item in items if item.type == "movie"),
        "shows": sum(1 for item in items if item.type == "series"),
        "items": [_json_entry(item) for item in items],
    }


def render_json(items: Sequence[MovieItem], now: datetime | None = None) -> str:
    return json.dumps(build_export_document(items, now), ensure_ascii=False, indent=2)


def render_csv(items: Iterable[MovieItem]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for item in items:
        writer.writerow([_cell(value) for value in _csv_row(item)])
    return buf.getvalue()


def render(items: Sequence[MovieItem], fmt: str, now: datetime | None = None) -> str:
    if fmt == "csv":
        return render_csv(items)
    if fmt == "json":
        return render_json(items, now)
    raise ValueError(f"Unsupported export format: {fmt!r}")


def _json_entry(item: MovieItem) -> dict[str, Any]:
    return {
        "title": item.title,
        "year": item.year,
        "type": item.type,
        "imdbId": item.imdb_id,
        "imdbRating": item.imdb_rating,
        "genre": item.genre,
        "director": item.director,
        "runtime": item.runtime,
        "watchDate": item.date.isoformat() if item.date else None,
        "list": item.list_state or "watched",
        "userRating": item.user_rating,
        "userNote": item.user_note,
        "posterUrl": item.poster_url,
    }


def _csv_row(item: MovieItem) -> list[Any]:
    note = (item.user_note or "").replace("\n", " ")
    return [
        item.title,
        item.year,
        item.type,
        item.imdb_id,
        item.imdb_rating,
        item.genre,
        item.director,
        item.runtime,
        item.date.isoformat() if item.date else None,
        item.list_state or "watched",
        _format_rating(item.user_rating),
        note,
    ]


def _format_rating(value: float | None) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def _cell(value: Any) -> str:
    return str(value) if value is not None else ""


__all__ = [
    "CSV_HEADER",
    "EXPORT_FORMATS",
    "ExportFormat",
    "build_export_document",
    "export_filename",
    "render",
    "render_csv",
    "render_json",
]
