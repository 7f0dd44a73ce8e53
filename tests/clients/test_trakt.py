"""Tests for the Trakt activity client."""

from datetime import datetime, timezone

import httpx
import pytest
import respx

from movie_shelf.clients.trakt import TraktClient, history_to_records, watchlist_to_records
from tests.fixtures.trakt_responses import HISTORY_PAGE_1, HISTORY_PAGE_2, WATCHLIST_RESPONSE

BASE_URL = "https://api.trakt.tv"


@pytest.fixture
def client():
    return TraktClient("client-id", "access-token", base_url=BASE_URL, timeout=5.0)


def _history_pages(request: httpx.Request) -> httpx.Response:
    page = int(request.url.params["page"])
    pages = {1: HISTORY_PAGE_1, 2: HISTORY_PAGE_2}
    return httpx.Response(200, json=pages.get(page, []))


class TestTraktClient:
    """Test cases for TraktClient."""

    @pytest.mark.asyncio
    async def test_client_initialization(self):
        """Test client is created with the Trakt v2 headers."""
        client = TraktClient("client-id", "access-token", base_url=BASE_URL + "/")

        assert client._client.headers["trakt-api-key"] == "client-id"
        assert client._client.headers["trakt-api-version"] == "2"
        assert client._client.headers["Authorization"] == "Bearer access-token"
        assert client._client.headers["User-Agent"] == "movie-shelf/0.1.0"

        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_history_request_parameters(self, client):
        """Test that history pages request extended metadata."""
        route = respx.get(f"{BASE_URL}/sync/history").mock(
            return_value=httpx.Response(200, json=HISTORY_PAGE_1)
        )

        await client.get_history(page=3, limit=50)

        params = route.calls[0].request.url.params
        assert params["page"] == "3"
        assert params["limit"] == "50"
        assert params["extended"] == "metadata"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_all_history_stops_at_empty_page(self, client):
        """Test paging stops on the first empty page."""
        route = respx.get(f"{BASE_URL}/sync/history").mock(side_effect=_history_pages)

        entries = await client.fetch_all_history(max_pages=15)

        assert len(entries) == 4
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_all_history_respects_max_pages(self, client):
        """Test paging never exceeds max_pages."""
        route = respx.get(f"{BASE_URL}/sync/history").mock(
            return_value=httpx.Response(200, json=HISTORY_PAGE_1)
        )

        await client.fetch_all_history(max_pages=2)

        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_records_combines_history_and_watchlist(self, client):
        """Test records are normalized from both endpoints."""
        respx.get(f"{BASE_URL}/sync/history").mock(side_effect=_history_pages)
        respx.get(f"{BASE_URL}/sync/watchlist").mock(
            return_value=httpx.Response(200, json=WATCHLIST_RESPONSE)
        )

        records = await client.fetch_records(max_pages=15)

        titles = [record.title for record in records]
        assert titles == ["Dune: Part Two", "Shogun", "Past Lives", "Perfect Days"]
        assert records[-1].list_state == "watchlist"

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_rate_limited_requests(self, client):
        """Test a 429 is retried before succeeding."""
        route = respx.get(f"{BASE_URL}/sync/watchlist").mock(
            side_effect=[
                httpx.Response(429, json={"error": "rate limited"}),
                httpx.Response(200, json=WATCHLIST_RESPONSE),
            ]
        )

        entries = await client.get_watchlist()

        assert route.call_count == 2
        assert len(entries) == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_errors_are_not_retried(self, client):
        """Test a 401 is raised immediately."""
        route = respx.get(f"{BASE_URL}/sync/watchlist").mock(
            return_value=httpx.Response(401, json={"error": "invalid_token"})
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.get_watchlist()
        assert route.call_count == 1


class TestRecordConversion:
    """Test conversion of Trakt payloads into source records."""

    def test_history_collapses_repeat_watches(self):
        records = history_to_records(HISTORY_PAGE_1)

        assert len(records) == 2
        shogun = records[1]
        assert shogun.type == "series"
        assert shogun.imdb_id == "tt2788316"
        assert shogun.id == 158947
        assert shogun.plays == 2
        assert shogun.date == datetime(2024, 3, 8, 19, 0, tzinfo=timezone.utc)

    def test_history_without_imdb_id_keeps_trakt_id(self):
        records = history_to_records(HISTORY_PAGE_2)

        assert records[0].imdb_id is None
        assert records[0].id == 812341
        assert records[0].plays == 1

    def test_watchlist_entries_carry_hint_and_skip_people(self):
        records = watchlist_to_records(WATCHLIST_RESPONSE)

        assert len(records) == 1
        assert records[0].list_state == "watchlist"
        assert records[0].date == datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
