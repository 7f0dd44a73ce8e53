"""Pydantic schemas for MCP tool parameters and responses."""

from typing import Any, Literal

from pydantic import BaseModel, Field

# Tool Parameter Schemas


class UserParams(BaseModel):
    """Common partition selector."""

    user: str | None = Field(None, description="Collection partition (defaults to the configured user)")


class SyncCollectionParams(UserParams):
    """Parameters for sync_collection tool."""


class ListCollectionParams(UserParams):
    """Parameters for list_collection tool."""

    sort: Literal["title", "year", "date"] = Field("title", description="Sort key")
    page: int = Field(1, description="1-indexed page number")
    list_state: Literal["watched", "watchlist"] | None = Field(
        None, description="Only return watched or watchlist items"
    )


class ItemParams(UserParams):
    """Parameters for tools addressing a single item."""

    key: str = Field(..., description="IMDb id or source id of the item")


class SetListStateParams(ItemParams):
    """Parameters for set_list_state tool."""

    state: Literal["watched", "watchlist"] = Field(..., description="Target list state")


class EditItemParams(ItemParams):
    """Parameters for edit_item tool."""

    rating: float | None = Field(None, ge=0.0, le=10.0, description="Personal rating, 0 clears it")
    note: str | None = Field(None, description="Personal note, empty string clears it")


class AddItemParams(UserParams):
    """Parameters for add_item tool."""

    title: str = Field(..., min_length=1, description="Title")
    year: int | None = Field(None, description="Release year")
    imdb_id: str | None = Field(None, description="IMDb id (e.g., tt1234567)")
    id: str | None = Field(None, description="Source id when no IMDb id is known")
    type: Literal["movie", "series"] = Field("movie", description="Media type")
    watchlist: bool = Field(False, description="Add straight to the watchlist")


class RecommendParams(BaseModel):
    """Parameters for recommend tool."""

    imdb_id: str = Field(..., description="IMDb id to find related titles for")


# Tool Response Schemas


class ToolResponse(BaseModel):
    """Envelope returned by every tool."""

    success: bool = Field(..., description="Whether operation succeeded")
    message: str = Field(..., description="Human-readable message")
    error: str | None = Field(None, description="Error code if failed")


class SyncCollectionResponse(ToolResponse):
    summary: dict[str, int] = Field(default_factory=dict, description="Sync counters")


class ListCollectionResponse(ToolResponse):
    items: list[dict[str, Any]] = Field(default_factory=list, description="Items on the page")
    page: int = Field(1, description="Returned page")
    pages: int = Field(0, description="Total pages")


class ItemResponse(ToolResponse):
    item: dict[str, Any] | None = Field(None, description="The affected item")


class RecommendResponse(ToolResponse):
    movies: list[dict[str, Any]] = Field(default_factory=list, description="Related titles")
