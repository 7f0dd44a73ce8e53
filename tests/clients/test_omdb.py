"""Tests for the OMDb metadata client."""

import httpx
import pytest
import respx

from movie_shelf.clients.omdb import OmdbClient, parse_omdb_payload
from tests.fixtures.omdb_responses import (
    DUNE_PART_TWO_RESPONSE,
    NOT_FOUND_RESPONSE,
    SPARSE_RESPONSE,
)

BASE_URL = "https://www.omdbapi.com"


@pytest.fixture
def client():
    return OmdbClient("omdb-key", base_url=BASE_URL)


class TestOmdbClient:
    """Test cases for OmdbClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_by_imdb_id(self, client):
        route = respx.get(f"{BASE_URL}/").mock(
            return_value=httpx.Response(200, json=DUNE_PART_TWO_RESPONSE)
        )

        metadata = await client.by_imdb_id("tt15239678")

        params = route.calls[0].request.url.params
        assert params["i"] == "tt15239678"
        assert params["apikey"] == "omdb-key"
        assert metadata["director"] == "Denis Villeneuve"
        assert metadata["poster_url"].endswith("dune2.jpg")

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_id_returns_none(self, client):
        respx.get(f"{BASE_URL}/").mock(return_value=httpx.Response(200, json=NOT_FOUND_RESPONSE))

        assert await client.by_imdb_id("tt0000000") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_errors_raise(self, client):
        respx.get(f"{BASE_URL}/").mock(return_value=httpx.Response(503))

        with pytest.raises(httpx.HTTPStatusError):
            await client.by_imdb_id("tt15239678")


class TestParseOmdbPayload:
    """Test mapping of OMDb fields."""

    def test_full_payload(self):
        metadata = parse_omdb_payload(DUNE_PART_TWO_RESPONSE)

        assert metadata["rating"] == 8.6
        assert metadata["imdb_rating"] == "8.6"
        assert metadata["rt_rating"] == "92%"
        assert metadata["metascore"] == "79"
        assert metadata["genre"] == "Action, Adventure, Drama"

    def test_placeholders_are_dropped(self):
        metadata = parse_omdb_payload(SPARSE_RESPONSE)

        assert "director" not in metadata
        assert "rating" not in metadata
        assert metadata["genre"] == "Short"
        assert metadata["metascore"] == "61"
