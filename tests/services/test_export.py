"""Tests for collection export."""

import csv
import io
import json
from datetime import datetime, timezone

import pytest

from movie_shelf.models import MovieItem
from movie_shelf.services.export import (
    CSV_HEADER,
    build_export_document,
    export_filename,
    render,
    render_csv,
)


@pytest.fixture
def items():
    return [
        MovieItem(
            imdb_id="tt1",
            title='The "Quoted" Movie',
            year=2020,
            imdb_rating="7.1",
            genre="Drama, Comedy",
            director="Jane Doe",
            runtime="101 min",
            date="2024-01-05T20:00:00Z",
            user_rating=4,
            user_note="line one\nline two",
        ),
        MovieItem(id=9, title="A Show", type="series", list_state="watchlist"),
    ]


class TestExport:
    """Test JSON and CSV export."""

    def test_json_document(self, items):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)

        document = build_export_document(items, now)

        assert document["exportDate"] == "2024-06-01T00:00:00+00:00"
        assert document["totalItems"] == 2
        assert document["movies"] == 1
        assert document["shows"] == 1
        assert document["items"][0]["list"] == "watched"
        assert document["items"][1]["list"] == "watchlist"
        assert document["items"][0]["watchDate"] == "2024-01-05T20:00:00+00:00"

    def test_csv_rows(self, items):
        rows = list(csv.reader(io.StringIO(render_csv(items))))

        assert rows[0] == CSV_HEADER
        assert rows[1][0] == 'The "Quoted" Movie'
        assert rows[1][5] == "Drama, Comedy"
        assert rows[1][9] == "watched"
        assert rows[1][10] == "4"
        assert rows[1][11] == "line one line two"
        assert rows[2][1] == ""
        assert rows[2][9] == "watchlist"

    def test_render_dispatches_by_format(self, items):
        assert json.loads(render(items, "json"))["totalItems"] == 2
        assert render(items, "csv").startswith("Title,Year,Type")
        with pytest.raises(ValueError):
            render(items, "xml")

    def test_filename(self):
        now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        assert export_filename("csv", now) == "movie-shelf-export-2024-06-01.csv"
