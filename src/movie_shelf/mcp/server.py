"""MCP server implementation with movie-shelf tools."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import uvicorn
from mcp.server import Server
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import BaseModel, ValidationError

from movie_shelf.config.settings import Settings, SettingsError, load_settings
from movie_shelf.errors import MovieShelfError, NotFound, StoreUnavailable
from movie_shelf.mcp.schemas import (
    AddItemParams,
    EditItemParams,
    ItemParams,
    ItemResponse,
    ListCollectionParams,
    ListCollectionResponse,
    RecommendParams,
    RecommendResponse,
    SetListStateParams,
    SyncCollectionParams,
    SyncCollectionResponse,
    ToolResponse,
)
from movie_shelf.services.collection import CollectionService

logger = logging.getLogger(__name__)

_USER_PROPERTY = {"type": "string", "description": "Collection partition (optional)"}
_KEY_PROPERTY = {"type": "string", "description": "IMDb id or source id"}

TOOLS: list[Tool] = [
    Tool(
        name="sync_collection",
        description=(
            "Import watch history and watchlist from Trakt and merge them into the collection. "
            "Returns added/updated/skipped counts."
        ),
        inputSchema={"type": "object", "properties": {"user": _USER_PROPERTY}},
    ),
    Tool(
        name="list_collection",
        description="Return one sorted page of the collection.",
        inputSchema={
            "type": "object",
            "properties": {
                "user": _USER_PROPERTY,
                "sort": {
                    "type": "string",
                    "enum": ["title", "year", "date"],
                    "default": "title",
                },
                "page": {"type": "integer", "default": 1},
                "list_state": {"type": "string", "enum": ["watched", "watchlist"]},
            },
        },
    ),
    Tool(
        name="get_item",
        description="Return every stored field of one item.",
        inputSchema={
            "type": "object",
            "properties": {"user": _USER_PROPERTY, "key": _KEY_PROPERTY},
            "required": ["key"],
        },
    ),
    Tool(
        name="set_list_state",
        description="Put an item on the watchlist or mark it watched.",
        inputSchema={
            "type": "object",
            "properties": {
                "user": _USER_PROPERTY,
                "key": _KEY_PROPERTY,
                "state": {"type": "string", "enum": ["watched", "watchlist"]},
            },
            "required": ["key", "state"],
        },
    ),
    Tool(
        name="edit_item",
        description="Set the personal rating and/or note of an item.",
        inputSchema={
            "type": "object",
            "properties": {
                "user": _USER_PROPERTY,
                "key": _KEY_PROPERTY,
                "rating": {"type": "number", "minimum": 0.0, "maximum": 10.0},
                "note": {"type": "string"},
            },
            "required": ["key"],
        },
    ),
    Tool(
        name="add_item",
        description="Add an item by hand; merged when the key already exists.",
        inputSchema={
            "type": "object",
            "properties": {
                "user": _USER_PROPERTY,
                "title": {"type": "string"},
                "year": {"type": "integer"},
                "imdb_id": {"type": "string"},
                "id": {"type": "string"},
                "type": {"type": "string", "enum": ["movie", "series"], "default": "movie"},
                "watchlist": {"type": "boolean", "default": False},
            },
            "required": ["title"],
        },
    ),
    Tool(
        name="remove_item",
        description="Delete an item from the collection.",
        inputSchema={
            "type": "object",
            "properties": {"user": _USER_PROPERTY, "key": _KEY_PROPERTY},
            "required": ["key"],
        },
    ),
    Tool(
        name="recommend",
        description="List titles related to an IMDb id, via TMDb.",
        inputSchema={
            "type": "object",
            "properties": {"imdb_id": {"type": "string"}},
            "required": ["imdb_id"],
        },
    ),
]

TOOL_NAMES: list[str] = [tool.name for tool in TOOLS]

ToolHandler = Callable[[Settings, dict[str, Any]], Awaitable[BaseModel]]


def create_mcp_server(settings: Settings | None = None) -> Server:
    """Create and configure the MCP server with all tools."""
    server = Server("movie-shelf")

    if settings is None:
        settings = load_settings().settings

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List all available tools."""
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        logger.info("Processing tool call: %s with arguments: %s", name, arguments)
        handler = HANDLERS.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        result = await dispatch(handler, settings, arguments or {})
        logger.debug("Tool call %s completed", name)
        return result

    return server


async def dispatch(
    handler: ToolHandler, settings: Settings, arguments: dict[str, Any]
) -> list[TextContent]:
    """Run a tool handler, reporting engine errors as ``success=false`` responses."""
    try:
        response: BaseModel = await handler(settings, arguments)
    except ValidationError as exc:
        response = _error("invalid_arguments", exc.errors()[0]["msg"])
    except SettingsError as exc:
        response = _error("config_error", str(exc))
    except NotFound as exc:
        response = _error("not_found", str(exc))
    except StoreUnavailable as exc:
        logger.warning("Store unavailable: %s", exc)
        response = _error("store_unavailable", str(exc))
    except httpx.HTTPError as exc:
        logger.warning("Remote service error: %s", exc)
        response = _error("service_error", str(exc))
    except (MovieShelfError, ValueError) as exc:
        response = _error("invalid_request", str(exc))
    return [TextContent(type="text", text=response.model_dump_json(indent=2))]


def _open_service(settings: Settings) -> CollectionService:
    return CollectionService.from_settings(settings)


def _user(settings: Settings, user: str | None) -> str:
    return user or settings.default_user


def _error(code: str, message: str) -> ToolResponse:
    return ToolResponse(success=False, error=code, message=message)


async def _sync_collection(settings: Settings, arguments: dict[str, Any]) -> SyncCollectionResponse:
    params = SyncCollectionParams(**arguments)
    settings.require_trakt()

    async with _open_service(settings) as service:
        result = await service.sync(_user(settings, params.user))

    return SyncCollectionResponse(
        success=True,
        summary=result.model_dump(),
        message=(
            f"Synced collection (added: {result.added}, updated: {result.updated}, "
            f"skipped: {result.skipped}, total: {result.total})"
        ),
    )


async def _list_collection(settings: Settings, arguments: dict[str, Any]) -> ListCollectionResponse:
    params = ListCollectionParams(**arguments)
    user = _user(settings, params.user)

    async with _open_service(settings) as service:
        items = await service.query_page(user, params.sort, params.page, list_state=params.list_state)
        pages = await service.page_count(user, list_state=params.list_state)

    return ListCollectionResponse(
        success=True,
        items=[item.to_storage() for item in items],
        page=params.page,
        pages=pages,
        message=f"Page {params.page} of {pages}: {len(items)} items",
    )


async def _get_item(settings: Settings, arguments: dict[str, Any]) -> ItemResponse:
    params = ItemParams(**arguments)
    async with _open_service(settings) as service:
        item = await service.get_item(_user(settings, params.user), params.key)
    return ItemResponse(success=True, item=item.to_storage(), message=item.title)


async def _set_list_state(settings: Settings, arguments: dict[str, Any]) -> ItemResponse:
    params = SetListStateParams(**arguments)
    async with _open_service(settings) as service:
        item = await service.set_list_state(_user(settings, params.user), params.key, params.state)
    label = "on watchlist" if item.on_watchlist else "marked watched"
    return ItemResponse(success=True, item=item.to_storage(), message=f"{item.title} {label}")


async def _edit_item(settings: Settings, arguments: dict[str, Any]) -> ItemResponse:
    params = EditItemParams(**arguments)
    if params.rating is None and params.note is None:
        return ItemResponse(
            success=False, error="invalid_arguments", message="Provide rating and/or note"
        )

    async with _open_service(settings) as service:
        item = await service.set_user_edit(
            _user(settings, params.user), params.key, rating=params.rating, note=params.note
        )
    return ItemResponse(success=True, item=item.to_storage(), message=f"Updated {item.title}")


async def _add_item(settings: Settings, arguments: dict[str, Any]) -> ItemResponse:
    params = AddItemParams(**arguments)
    if not params.imdb_id and not params.id:
        return ItemResponse(
            success=False, error="invalid_arguments", message="Provide imdb_id or id"
        )

    record: dict[str, Any] = {
        "title": params.title,
        "year": params.year,
        "type": params.type,
        "imdb_id": params.imdb_id,
        "id": params.id,
        "source": "manual",
    }
    if params.watchlist:
        record["list_state"] = "watchlist"

    async with _open_service(settings) as service:
        item = await service.add_local(_user(settings, params.user), record)
    return ItemResponse(success=True, item=item.to_storage(), message=f"Saved {item.title}")


async def _remove_item(settings: Settings, arguments: dict[str, Any]) -> ToolResponse:
    params = ItemParams(**arguments)
    async with _open_service(settings) as service:
        await service.remove_local(_user(settings, params.user), params.key)
    return ToolResponse(success=True, message=f"Removed {params.key}")


async def _recommend(settings: Settings, arguments: dict[str, Any]) -> RecommendResponse:
    params = RecommendParams(**arguments)
    settings.require_tmdb()

    async with _open_service(settings) as service:
        movies = await service.recommendations(params.imdb_id)

    return RecommendResponse(
        success=True,
        movies=[movie.model_dump() for movie in movies],
        message=f"Found {len(movies)} related titles",
    )


HANDLERS: dict[str, ToolHandler] = {
    "sync_collection": _sync_collection,
    "list_collection": _list_collection,
    "get_item": _get_item,
    "set_list_state": _set_list_state,
    "edit_item": _edit_item,
    "add_item": _add_item,
    "remove_item": _remove_item,
    "recommend": _recommend,
}


async def run_mcp_server(settings: Settings) -> None:
    """Run the MCP server with stdio transport."""
    server = create_mcp_server(settings)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def run_mcp_http_server(settings: Settings, host: str, port: int) -> None:
    """Run the MCP server with HTTP/SSE transport."""
    server = create_mcp_server(settings)
    sse = SseServerTransport("/mcp/messages")

    async def app(scope, receive, send):
        """Raw ASGI application for MCP SSE transport."""
        if scope["type"] != "http":
            return

        path = scope["path"]
        method = scope["method"]
        logger.debug("Received %s request to %s", method, path)

        if path == "/mcp/sse":
            logger.info("Opening SSE connection from %s", scope.get("client", ["unknown"])[0])
            async with sse.connect_sse(scope, receive, send) as streams:
                await server.run(streams[0], streams[1], server.create_initialization_options())

        elif path == "/mcp/messages" and method == "POST":
            await sse.handle_post_message(scope, receive, send)

        else:
            logger.warning("404 for %s %s", method, path)
            await send(
                {
                    "type": "http.response.start",
                    "status": 404,
                    "headers": [[b"content-type", b"text/plain"]],
                }
            )
            await send({"type": "http.response.body", "body": b"Not Found"})

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server_instance = uvicorn.Server(config)
    await server_instance.serve()


def main() -> None:
    """Entry point for MCP server."""
    settings = load_settings().settings
    asyncio.run(run_mcp_server(settings))


if __name__ == "__main__":
    main()
