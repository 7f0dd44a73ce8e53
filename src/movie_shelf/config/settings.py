from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

CONFIG_PATH_ENV = "MOVIE_SHELF_CONFIG"


class Settings(BaseModel):
    """Application configuration resolved from env vars and optional TOML files."""

    trakt_client_id: str | None = Field(default=None, alias="TRAKT_CLIENT_ID")
    trakt_access_token: str | None = Field(default=None, alias="TRAKT_ACCESS_TOKEN")
    trakt_api_url: str = Field(default="https://api.trakt.tv", alias="TRAKT_API_URL")
    trakt_max_pages: int = Field(default=15, alias="TRAKT_MAX_PAGES", ge=1)

    omdb_api_key: str | None = Field(default=None, alias="OMDB_API_KEY")
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")

    data_dir: Path = Field(default=Path("data"), alias="MOVIE_SHELF_DATA_DIR")
    redis_url: str | None = Field(default=None, alias="MOVIE_SHELF_REDIS_URL")
    redis_prefix: str = Field(default="movie-shelf", alias="MOVIE_SHELF_REDIS_PREFIX")

    default_user: str = Field(default="default", alias="MOVIE_SHELF_USER")
    page_size: int = Field(default=50, alias="MOVIE_SHELF_PAGE_SIZE", ge=1)

    enrichment_timeout: float = Field(default=10.0, alias="ENRICHMENT_TIMEOUT", gt=0)
    enrichment_batch_size: int = Field(default=25, alias="ENRICHMENT_BATCH_SIZE", ge=0)
    enrichment_concurrency: int = Field(default=5, alias="ENRICHMENT_CONCURRENCY", ge=1)

    # MCP Service Configuration
    mcp_host: str = Field(default="127.0.0.1", alias="MCP_HOST")
    mcp_port: int = Field(default=8092, alias="MCP_PORT")
    mcp_transport: str = Field(default="stdio", alias="MCP_TRANSPORT")

    model_config = {
        "populate_by_name": True,
        "str_strip_whitespace": True,
        "extra": "ignore",
    }

    @property
    def uses_remote_store(self) -> bool:
        return bool(self.redis_url)

    def require_trakt(self) -> None:
        """Ensure activity-service credentials are available."""
        if not self.trakt_client_id or not self.trakt_access_token:
            raise SettingsError(
                "Missing TRAKT_CLIENT_ID or TRAKT_ACCESS_TOKEN. Configure environment or TOML file.",
            )

    def require_metadata(self) -> None:
        if not self.omdb_api_key:
            raise SettingsError("Missing OMDB_API_KEY. Configure environment or TOML file.")

    def require_tmdb(self) -> None:
        if not self.tmdb_api_key:
            raise SettingsError("Missing TMDB_API_KEY. Configure environment or TOML file.")


class SettingsError(RuntimeError):
    """Raised when configuration cannot be resolved."""


@dataclass(frozen=True)
class SettingsLoadResult:
    settings: Settings
    source_path: Path | None


def load_settings(config_path: Path | None = None, *, load_env: bool = True) -> SettingsLoadResult:
    """Load settings from .env files, environment variables, and optional TOML configuration."""

    if load_env:
        load_dotenv()

    resolved_path = _determine_config_path(config_path)
    config_data: dict[str, Any] = {}

    if resolved_path and resolved_path.exists():
        try:
            with resolved_path.open("rb") as handle:
                toml_payload = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise SettingsError(f"Invalid TOML in {resolved_path}: {exc}") from exc
        config_data = _flatten_toml(toml_payload)

    env_data = _collect_env_overrides()
    merged = {**config_data, **env_data}

    try:
        settings = Settings.model_validate(merged)
    except ValidationError as exc:  # pragma: no cover - surfaced via CLI messaging
        raise SettingsError(str(exc)) from exc

    return SettingsLoadResult(settings=settings, source_path=resolved_path)


def _determine_config_path(config_path: Path | None) -> Path | None:
    if config_path:
        return config_path

    env_override = os.getenv(CONFIG_PATH_ENV)
    if env_override:
        return Path(env_override).expanduser().resolve()

    default_path = Path.home() / ".config" / "movie-shelf" / "config.toml"
    return default_path if default_path.exists() else None


# (toml section, toml key) -> settings field
_TOML_FIELDS: dict[tuple[str, str], str] = {
    ("trakt", "client_id"): "trakt_client_id",
    ("trakt", "access_token"): "trakt_access_token",
    ("trakt", "api_url"): "trakt_api_url",
    ("trakt", "max_pages"): "trakt_max_pages",
    ("metadata", "omdb_api_key"): "omdb_api_key",
    ("metadata", "tmdb_api_key"): "tmdb_api_key",
    ("metadata", "timeout"): "enrichment_timeout",
    ("metadata", "batch_size"): "enrichment_batch_size",
    ("metadata", "concurrency"): "enrichment_concurrency",
    ("storage", "data_dir"): "data_dir",
    ("storage", "redis_url"): "redis_url",
    ("storage", "redis_prefix"): "redis_prefix",
    ("library", "default_user"): "default_user",
    ("library", "page_size"): "page_size",
    ("mcp", "host"): "mcp_host",
    ("mcp", "port"): "mcp_port",
    ("mcp", "transport"): "mcp_transport",
}


def _flatten_toml(payload: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for (section, key), field in _TOML_FIELDS.items():
        section_cfg = payload.get(section, {})
        if isinstance(section_cfg, dict) and key in section_cfg:
            result[field] = section_cfg[key]

    if "data_dir" in result:
        result["data_dir"] = Path(str(result["data_dir"])).expanduser()
    return result


def _collect_env_overrides() -> dict[str, Any]:
    mapping: dict[str, str] = {
        "TRAKT_CLIENT_ID": "trakt_client_id",
        "TRAKT_ACCESS_TOKEN": "trakt_access_token",
        "TRAKT_API_URL": "trakt_api_url",
        "TRAKT_MAX_PAGES": "trakt_max_pages",
        "OMDB_API_KEY": "omdb_api_key",
        "TMDB_API_KEY": "tmdb_api_key",
        "MOVIE_SHELF_DATA_DIR": "data_dir",
        "MOVIE_SHELF_REDIS_URL": "redis_url",
        "MOVIE_SHELF_REDIS_PREFIX": "redis_prefix",
        "MOVIE_SHELF_USER": "default_user",
        "MOVIE_SHELF_PAGE_SIZE": "page_size",
        "ENRICHMENT_TIMEOUT": "enrichment_timeout",
        "ENRICHMENT_BATCH_SIZE": "enrichment_batch_size",
        "ENRICHMENT_CONCURRENCY": "enrichment_concurrency",
        "MCP_HOST": "mcp_host",
        "MCP_PORT": "mcp_port",
        "MCP_TRANSPORT": "mcp_transport",
    }

    result: dict[str, Any] = {}
    for env_name, field in mapping.items():
        if env_name not in os.environ:
            continue
        value = os.environ[env_name]
        if field in {
            "trakt_max_pages",
            "page_size",
            "enrichment_batch_size",
            "enrichment_concurrency",
            "mcp_port",
        }:
            result[field] = int(value)
        elif field == "enrichment_timeout":
            result[field] = float(value)
        elif field == "data_dir":
            result[field] = Path(value).expanduser()
        elif field == "redis_url":
            result[field] = value or None
        else:
            result[field] = value
    return result


__all__ = ["Settings", "SettingsError", "SettingsLoadResult", "load_settings"]
