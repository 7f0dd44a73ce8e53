from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import httpx
import typer

from movie_shelf import __version__
from movie_shelf.config import Settings, SettingsError, SettingsLoadResult, load_settings
from movie_shelf.errors import MovieShelfError, NotFound, StoreUnavailable
from movie_shelf.models import MovieItem
from movie_shelf.services.collection import CollectionService
from movie_shelf.services.export import EXPORT_FORMATS, export_filename
from movie_shelf.services.query import SORT_KEYS

T = TypeVar("T")

app = typer.Typer(
    add_completion=False,
    help="Sync, curate, and browse a personal movie and series collection.",
)
watchlist_app = typer.Typer(help="Move items on and off the watchlist.")
app.add_typer(watchlist_app, name="watchlist")

USER_OPTION_HELP = "Collection partition (default: MOVIE_SHELF_USER or 'default')."


@app.callback()
def _cli_entry(ctx: typer.Context) -> None:
    """Entrypoint for the movie-shelf CLI."""
    ctx.obj = {} if ctx.obj is None else ctx.obj


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(__version__)


@app.command()
def config(show_sources: bool = typer.Option(False, help="Display configuration hints.")) -> None:
    """Describe configuration expectations."""
    load_result = _safe_load_settings(load_even_if_missing=True)
    if load_result is None:
        raise typer.Exit(code=1)

    settings = load_result.settings
    values: dict[str, Any] = {
        "trakt_client_id": "<set>" if settings.trakt_client_id else "<unset>",
        "trakt_access_token": "<set>" if settings.trakt_access_token else "<unset>",
        "trakt_max_pages": settings.trakt_max_pages,
        "omdb_api_key": "<set>" if settings.omdb_api_key else "<unset>",
        "tmdb_api_key": "<set>" if settings.tmdb_api_key else "<unset>",
        "store": "redis" if settings.uses_remote_store else "local",
        "data_dir": settings.data_dir,
        "redis_prefix": settings.redis_prefix,
        "default_user": settings.default_user,
        "page_size": settings.page_size,
        "enrichment_timeout": settings.enrichment_timeout,
        "enrichment_batch_size": settings.enrichment_batch_size,
    }

    for key, value in values.items():
        typer.echo(f"{key}: {value}")

    if show_sources:
        source_hint = load_result.source_path or "<env/.env>"
        typer.echo(f"resolved_from: {source_hint}")
        typer.echo(
            "Service keys: TRAKT_CLIENT_ID, TRAKT_ACCESS_TOKEN, OMDB_API_KEY, TMDB_API_KEY."
            " Configure ~/.config/movie-shelf/config.toml for persistent settings.",
        )


@app.command()
def sync(
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
    debug: bool = typer.Option(False, help="Enable debug logging."),
) -> None:
    """Import watch history and watchlist from Trakt into the collection."""
    if debug:
        _setup_logging(logging.DEBUG)

    settings = _require_settings()
    try:
        settings.require_trakt()
    except SettingsError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    result = _run(settings, lambda service: service.sync(_user(settings, user)))
    typer.secho(
        f"Added: {result.added} | Updated: {result.updated} | Skipped: {result.skipped}",
        fg=typer.colors.CYAN,
    )
    typer.echo(f"Total items: {result.total}")
    if result.enrichment_failed:
        typer.secho(f"Enrichment failures: {result.enrichment_failed}", fg=typer.colors.YELLOW)
    if result.remaining:
        typer.echo(f"{result.remaining} items still need metadata; run `movie-shelf enrich`.")


@app.command("list")
def list_items(
    sort: str = typer.Option("title", help=f"Sort key: {', '.join(SORT_KEYS)}."),
    page: int = typer.Option(1, help="1-indexed page number."),
    list_state: str | None = typer.Option(
        None, "--list", help="Only show 'watched' or 'watchlist' items."
    ),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
    json_output: bool = typer.Option(False, "--json/--no-json", help="Output as JSON."),
) -> None:
    """Show one page of the collection."""
    if list_state not in (None, "watched", "watchlist"):
        typer.secho("--list must be 'watched' or 'watchlist'", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    settings = _require_settings()
    items = _run(
        settings,
        lambda service: service.query_page(
            _user(settings, user), sort, page, list_state=list_state  # type: ignore[arg-type]
        ),
    )

    if json_output:
        typer.echo(json.dumps([item.to_storage() for item in items], indent=2))
        return
    if not items:
        typer.secho("No items on this page.", fg=typer.colors.YELLOW)
        return

    offset = (page - 1) * settings.page_size
    for idx, item in enumerate(items, start=offset + 1):
        _render_item_line(idx, item)


@app.command()
def show(
    key: str = typer.Argument(..., help="IMDb id or source id."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Show every stored field of one item."""
    settings = _require_settings()
    item = _run(settings, lambda service: service.get_item(_user(settings, user), key))
    typer.echo(json.dumps(item.to_storage(), indent=2, ensure_ascii=False))


@app.command("random")
def random_pick(
    list_state: str | None = typer.Option(
        None, "--list", help="Only pick from 'watched' or 'watchlist' items."
    ),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Pick one item from the collection at random."""
    if list_state not in (None, "watched", "watchlist"):
        typer.secho("--list must be 'watched' or 'watchlist'", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    settings = _require_settings()
    item = _run(
        settings,
        lambda service: service.random_item(
            _user(settings, user), list_state=list_state  # type: ignore[arg-type]
        ),
    )
    _render_item_line(1, item)


@watchlist_app.command("add")
def watchlist_add(
    key: str = typer.Argument(..., help="IMDb id or source id."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Put an item on the watchlist."""
    settings = _require_settings()
    item = _run(
        settings, lambda service: service.set_list_state(_user(settings, user), key, "watchlist")
    )
    typer.secho(f"On watchlist: {item.title}", fg=typer.colors.GREEN)


@watchlist_app.command("remove")
def watchlist_remove(
    key: str = typer.Argument(..., help="IMDb id or source id."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Take an item off the watchlist (marks it watched)."""
    settings = _require_settings()
    item = _run(
        settings, lambda service: service.set_list_state(_user(settings, user), key, "watched")
    )
    typer.secho(f"Marked watched: {item.title}", fg=typer.colors.GREEN)


@app.command()
def edit(
    key: str = typer.Argument(..., help="IMDb id or source id."),
    rating: float | None = typer.Option(
        None, help="Personal rating (0 clears it).", min=0.0, max=10.0
    ),
    note: str | None = typer.Option(None, help="Personal note (empty string clears it)."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Set the personal rating and/or note of an item."""
    if rating is None and note is None:
        typer.secho("Nothing to change: pass --rating and/or --note", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)

    settings = _require_settings()
    item = _run(
        settings,
        lambda service: service.set_user_edit(_user(settings, user), key, rating=rating, note=note),
    )
    typer.secho(f"Updated {item.title}", fg=typer.colors.GREEN)
    typer.echo(f"  rating: {item.user_rating if item.user_rating is not None else '-'}")
    typer.echo(f"  note: {item.user_note or '-'}")


@app.command()
def add(
    title: str = typer.Option(..., help="Title of the movie or series."),
    year: int | None = typer.Option(None, help="Release year."),
    imdb_id: str | None = typer.Option(None, help="IMDb id (e.g., tt1234567)."),
    item_id: str | None = typer.Option(None, "--id", help="Source id when no IMDb id is known."),
    media_type: str = typer.Option("movie", "--type", help="movie or series."),
    watchlist: bool = typer.Option(False, help="Add straight to the watchlist."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Add an item by hand (merged if it already exists)."""
    if not imdb_id and not item_id:
        typer.secho("Error: Must provide either --imdb-id or --id", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    record: dict[str, Any] = {"title": title, "year": year, "type": media_type, "source": "manual"}
    if imdb_id:
        record["imdb_id"] = imdb_id
    if item_id:
        record["id"] = item_id
    if watchlist:
        record["list_state"] = "watchlist"

    settings = _require_settings()
    item = _run(settings, lambda service: service.add_local(_user(settings, user), record))
    typer.secho(f"Saved {item.title} ({item.year or 'TBA'})", fg=typer.colors.GREEN)


@app.command()
def remove(
    key: str = typer.Argument(..., help="IMDb id or source id."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Delete an item from the collection."""
    settings = _require_settings()
    _run(settings, lambda service: service.remove_local(_user(settings, user), key))
    typer.secho(f"Removed {key}", fg=typer.colors.GREEN)


@app.command()
def cleanup(user: str | None = typer.Option(None, help=USER_OPTION_HELP)) -> None:
    """Remove duplicate records left behind by older versions."""
    settings = _require_settings()
    removed = _run(settings, lambda service: service.cleanup(_user(settings, user)))
    if removed:
        typer.secho(f"Removed {removed} duplicate records.", fg=typer.colors.GREEN)
    else:
        typer.echo("Collection was already clean.")


@app.command()
def enrich(
    batch_size: int | None = typer.Option(
        None, help="Items to enrich this run (default: ENRICHMENT_BATCH_SIZE)."
    ),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
    debug: bool = typer.Option(False, help="Enable debug logging."),
) -> None:
    """Fill missing metadata for stored items from OMDb."""
    if debug:
        _setup_logging(logging.DEBUG)

    settings = _require_settings()
    try:
        settings.require_metadata()
    except SettingsError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    result = _run(settings, lambda service: service.re_enrich(_user(settings, user), batch_size))
    typer.secho(
        f"Enriched: {result.enriched} | Failed: {result.failed} | Remaining: {result.remaining}",
        fg=typer.colors.CYAN,
    )
    if result.remaining:
        typer.echo(f"Run again to enrich the remaining {result.remaining} items.")


@app.command()
def export(
    fmt: str = typer.Option("json", "--format", help="json or csv."),
    output: Path | None = typer.Option(
        None, help="File to write (default: movie-shelf-export-<date>.<format>)."
    ),
    stdout: bool = typer.Option(False, help="Print to stdout instead of writing a file."),
    user: str | None = typer.Option(None, help=USER_OPTION_HELP),
) -> None:
    """Export the collection as JSON or CSV."""
    if fmt not in EXPORT_FORMATS:
        typer.secho(f"Unsupported format: {fmt}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    settings = _require_settings()
    payload = _run(settings, lambda service: service.export(_user(settings, user), fmt))
    if stdout:
        typer.echo(payload, nl=False)
        return

    target = output or Path(export_filename(fmt))
    target.write_text(payload, encoding="utf-8")
    typer.secho(f"Exported to {target}", fg=typer.colors.GREEN)


@app.command()
def recommend(imdb_id: str = typer.Argument(..., help="IMDb id to find related titles for.")) -> None:
    """List titles related to one item, via TMDb."""
    settings = _require_settings()
    try:
        settings.require_tmdb()
    except SettingsError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    movies = _run(settings, lambda service: service.recommendations(imdb_id))
    if not movies:
        typer.secho("No recommendations found.", fg=typer.colors.YELLOW)
        return
    for idx, movie in enumerate(movies, start=1):
        rating = f" • {movie.rating:.1f}" if movie.rating is not None else ""
        typer.echo(f"{idx}. {movie.title} ({movie.year or 'TBA'}){rating}")


@app.command()
def serve(
    host: str | None = typer.Option(
        None, help="Host to bind MCP server (default: MCP_HOST or 127.0.0.1)"
    ),
    port: int | None = typer.Option(
        None, help="Port to bind MCP server (default: MCP_PORT or 8092)"
    ),
    transport: str | None = typer.Option(
        None, help="Transport: stdio or sse (default: MCP_TRANSPORT or stdio)"
    ),
    debug: bool = typer.Option(False, help="Enable debug logging"),
) -> None:
    """Run movie-shelf as an MCP service for AI agents.

    Transport modes:
    - stdio: Process communication via stdin/stdout (for subprocess integration)
    - sse: HTTP/SSE server on network (for remote clients)
      Endpoints: /mcp/sse (SSE stream), /mcp/messages (POST)

    Example:
        movie-shelf serve --host 0.0.0.0 --port 8092 --transport sse
    """
    if debug:
        _setup_logging(logging.DEBUG)
        logging.getLogger("mcp").setLevel(logging.DEBUG)
        logging.getLogger("movie_shelf.mcp").setLevel(logging.DEBUG)

    settings = _require_settings()

    final_host = host if host is not None else settings.mcp_host
    final_port = port if port is not None else settings.mcp_port
    final_transport = transport if transport is not None else settings.mcp_transport

    from movie_shelf.mcp.server import TOOL_NAMES, run_mcp_http_server, run_mcp_server

    if final_transport == "sse":
        typer.secho(
            f"Starting MCP HTTP/SSE server on http://{final_host}:{final_port}...",
            fg=typer.colors.GREEN,
        )
    else:
        typer.secho("Starting MCP stdio server...", fg=typer.colors.GREEN)

    typer.echo(f"Available tools: {', '.join(TOOL_NAMES)}")
    typer.echo("Press Ctrl+C to stop")

    try:
        if final_transport == "sse":
            asyncio.run(run_mcp_http_server(settings, final_host, final_port))
        else:
            asyncio.run(run_mcp_server(settings))
    except KeyboardInterrupt:
        typer.echo("\nMCP server stopped")


def main() -> None:
    """Expose Typer app for the console script."""
    app()


def _build_service(settings: Settings) -> CollectionService:
    return CollectionService.from_settings(settings)


def _run(settings: Settings, operation: Callable[[CollectionService], Awaitable[T]]) -> T:
    """Run one service operation and turn engine errors into exit codes."""

    async def _execute() -> T:
        async with _build_service(settings) as service:
            return await operation(service)

    try:
        return asyncio.run(_execute())
    except NotFound as exc:
        typer.secho(f"Item not found: {exc.key}", fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    except StoreUnavailable as exc:
        typer.secho(f"Storage unavailable: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc
    except httpx.HTTPError as exc:
        typer.secho(f"Remote service error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    except (MovieShelfError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def _require_settings() -> Settings:
    load_result = _safe_load_settings()
    if load_result is None:
        raise typer.Exit(code=1)
    return load_result.settings


def _user(settings: Settings, override: str | None) -> str:
    return override or settings.default_user


def _safe_load_settings(load_even_if_missing: bool = False) -> SettingsLoadResult | None:
    try:
        return load_settings()
    except SettingsError as exc:
        if load_even_if_missing:
            typer.secho(
                f"Warning: configuration incomplete – {exc}",
                fg=typer.colors.YELLOW,
            )
            return SettingsLoadResult(settings=Settings(), source_path=None)
        typer.secho(str(exc), fg=typer.colors.RED)
        return None


def _setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for debug mode."""
    logging.basicConfig(
        format="%(message)s",
        level=level,
        force=True,
    )


def _render_item_line(idx: int, item: MovieItem) -> None:
    year = item.year or "TBA"
    marker = " • watchlist" if item.on_watchlist else ""
    key = item.imdb_id or item.id
    typer.echo(f"{idx}. {item.title} ({year}) [{item.type}]{marker} • {key}")
    extras = []
    if item.director:
        extras.append(f"dir. {item.director}")
    if item.user_rating is not None:
        extras.append(f"my rating {item.user_rating:g}")
    if extras:
        typer.echo(f"   {' | '.join(extras)}")


if __name__ == "__main__":
    main()
