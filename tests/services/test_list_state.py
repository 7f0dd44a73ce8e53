"""Tests for watchlist transitions."""

import pytest

from movie_shelf.models import MovieItem
from movie_shelf.services.list_state import ListStateMachine


@pytest.fixture
def machine():
    return ListStateMachine()


class TestListStateMachine:
    """Test ListStateMachine transitions."""

    def test_add_to_watchlist(self, machine):
        item = MovieItem(imdb_id="tt1", title="A")
        assert machine.add_to_watchlist(item).list_state == "watchlist"

    def test_add_twice_is_idempotent(self, machine):
        item = MovieItem(imdb_id="tt1", title="A")
        once = machine.add_to_watchlist(item)
        twice = machine.add_to_watchlist(once)
        assert twice == once
        assert twice is once

    def test_remove_clears_state(self, machine):
        item = MovieItem(imdb_id="tt1", title="A", list_state="watchlist")
        removed = machine.remove_from_watchlist(item)
        assert removed.list_state is None
        assert not removed.on_watchlist

    def test_remove_from_watched_is_noop(self, machine):
        item = MovieItem(imdb_id="tt1", title="A")
        assert machine.remove_from_watchlist(item) is item

    def test_explicit_watched_value_is_cleared(self, machine):
        item = MovieItem(imdb_id="tt1", title="A", list_state="watched")
        assert machine.set_state(item, "watched").list_state is None

    def test_set_state_rejects_unknown_state(self, machine):
        item = MovieItem(imdb_id="tt1", title="A")
        with pytest.raises(ValueError):
            machine.set_state(item, "archived")  # type: ignore[arg-type]

    def test_transitions_leave_user_fields_alone(self, machine):
        item = MovieItem(imdb_id="tt1", title="A", user_rating=4, user_note="rewatch")
        moved = machine.set_state(item, "watchlist")
        assert moved.user_rating == 4
        assert moved.user_note == "rewatch"
