"""Tests for metadata enrichment."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from movie_shelf.clients.omdb import parse_omdb_payload
from movie_shelf.errors import EnrichmentFailed
from movie_shelf.models import MovieItem
from movie_shelf.services.enrichment import MetadataEnricher
from tests.fixtures.omdb_responses import DUNE_PART_TWO_RESPONSE


@pytest.fixture
def metadata_client():
    client = AsyncMock()
    client.by_imdb_id = AsyncMock(return_value=parse_omdb_payload(DUNE_PART_TWO_RESPONSE))
    return client


@pytest.fixture
def enricher(metadata_client):
    return MetadataEnricher(metadata_client, timeout=1.0)


class TestMetadataEnricher:
    """Test MetadataEnricher.enrich."""

    @pytest.mark.asyncio
    async def test_fills_missing_fields(self, enricher, metadata_client):
        item = MovieItem(imdb_id="tt15239678", title="Dune: Part Two")

        result = await enricher.enrich(item)

        metadata_client.by_imdb_id.assert_awaited_once_with("tt15239678")
        assert result.error is None
        assert result.changed
        assert result.item.director == "Denis Villeneuve"
        assert result.item.rating == 8.6
        assert result.item.rt_rating == "92%"
        assert result.item.metascore == "79"
        assert "director" in result.filled

    @pytest.mark.asyncio
    async def test_existing_values_and_user_fields_are_kept(self, enricher):
        item = MovieItem(
            imdb_id="tt15239678",
            title="Dune: Part Two",
            director="Someone Else",
            plot="Unknown",
            user_rating=3,
            user_note="Too loud",
        )

        result = await enricher.enrich(item)

        assert result.item.director == "Someone Else"
        assert result.item.plot.startswith("Paul Atreides")
        assert result.item.user_rating == 3
        assert result.item.user_note == "Too loud"

    @pytest.mark.asyncio
    async def test_skips_items_without_imdb_id(self, enricher, metadata_client):
        item = MovieItem(id=5, title="Home Video")

        result = await enricher.enrich(item)

        assert result.item is item
        assert result.error is None
        metadata_client.by_imdb_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skips_complete_items(self, enricher, metadata_client):
        item = MovieItem.model_validate(
            {
                "imdbId": "tt1",
                "title": "Complete",
                "director": "D",
                "actors": "A",
                "plot": "P",
                "genre": "G",
                "runtime": "90 min",
                "posterUrl": "https://example.com/p.jpg",
                "rating": 6.5,
                "imdbRating": "6.5",
                "rtRating": "50%",
                "metascore": "55",
            }
        )

        result = await enricher.enrich(item)

        assert result.item is item
        metadata_client.by_imdb_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_returns_item_unchanged_with_error(self, metadata_client):
        async def _slow(imdb_id):
            await asyncio.sleep(1)
            return {"director": "Too late"}

        metadata_client.by_imdb_id = AsyncMock(side_effect=_slow)
        enricher = MetadataEnricher(metadata_client, timeout=0.01)
        item = MovieItem(imdb_id="tt1", title="Slow")

        result = await enricher.enrich(item)

        assert result.item is item
        assert isinstance(result.error, EnrichmentFailed)
        assert "timed out" in str(result.error)

    @pytest.mark.asyncio
    async def test_service_error_is_absorbed(self, metadata_client):
        metadata_client.by_imdb_id = AsyncMock(side_effect=httpx.ConnectError("boom"))
        enricher = MetadataEnricher(metadata_client)
        item = MovieItem(imdb_id="tt1", title="Offline")

        result = await enricher.enrich(item)

        assert result.item is item
        assert result.error is not None
        assert result.error.imdb_id == "tt1"

    @pytest.mark.asyncio
    async def test_unknown_title_is_not_an_error(self, metadata_client):
        metadata_client.by_imdb_id = AsyncMock(return_value=None)
        enricher = MetadataEnricher(metadata_client)
        item = MovieItem(imdb_id="tt1", title="Missing upstream")

        result = await enricher.enrich(item)

        assert result.item is item
        assert result.error is None
        assert not result.changed

    @pytest.mark.asyncio
    async def test_enrich_many_keeps_order(self, enricher):
        items = [MovieItem(imdb_id=f"tt{index}", title=f"T{index}") for index in range(6)]

        results = await enricher.enrich_many(items)

        assert [result.item.imdb_id for result in results] == [item.imdb_id for item in items]
        assert all(result.changed for result in results)
