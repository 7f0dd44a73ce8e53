from __future__ import annotations

from movie_shelf.models import ListState, MovieItem


class ListStateMachine:
    """Watchlist transitions for a single item.

    Unset and ``"watched"`` are the same state; leaving the watchlist clears the
    field rather than writing ``"watched"``. Both transitions are idempotent.
    """

    def add_to_watchlist(self, item: MovieItem) -> MovieItem:
        if item.on_watchlist:
            return item
        return item.model_copy(update={"list_state": "watchlist"})

    def remove_from_watchlist(self, item: MovieItem) -> MovieItem:
        if item.list_state is None:
            return item
        return item.model_copy(update={"list_state": None})

    def set_state(self, item: MovieItem, state: ListState) -> MovieItem:
        if state == "watchlist":
            return self.add_to_watchlist(item)
        if state == "watched":
            return self.remove_from_watchlist(item)
        raise ValueError(f"Unknown list state: {state!r}")


__all__ = ["ListStateMachine"]
