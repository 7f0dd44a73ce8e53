"""Tests for configuration and settings functionality."""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from movie_shelf.config.settings import (
    Settings,
    SettingsError,
    SettingsLoadResult,
    _collect_env_overrides,
    _determine_config_path,
    _flatten_toml,
    load_settings,
)


class TestSettings:
    """Test Settings model functionality."""

    def test_settings_default_values(self):
        """Test Settings model with default values."""
        settings = Settings()

        assert settings.trakt_client_id is None
        assert settings.trakt_access_token is None
        assert settings.trakt_api_url == "https://api.trakt.tv"
        assert settings.trakt_max_pages == 15
        assert settings.omdb_api_key is None
        assert settings.tmdb_api_key is None
        assert settings.data_dir == Path("data")
        assert settings.redis_url is None
        assert settings.redis_prefix == "movie-shelf"
        assert settings.default_user == "default"
        assert settings.page_size == 50
        assert settings.enrichment_timeout == 10.0
        assert settings.enrichment_batch_size == 25
        assert settings.enrichment_concurrency == 5
        assert settings.mcp_transport == "stdio"
        assert not settings.uses_remote_store

    def test_settings_with_aliases(self):
        """Test Settings model accepts env-style aliases."""
        settings = Settings.model_validate(
            {
                "TRAKT_CLIENT_ID": "client",
                "MOVIE_SHELF_REDIS_URL": "redis://cache:6379/1",
                "MOVIE_SHELF_PAGE_SIZE": 20,
            }
        )

        assert settings.trakt_client_id == "client"
        assert settings.uses_remote_store
        assert settings.page_size == 20

    def test_settings_reject_non_positive_page_size(self):
        """Test page size validation."""
        with pytest.raises(ValueError):
            Settings(page_size=0)

    def test_require_trakt(self):
        """Test activity-service credential checks."""
        Settings(trakt_client_id="client", trakt_access_token="token").require_trakt()

        with pytest.raises(SettingsError, match="TRAKT_CLIENT_ID"):
            Settings(trakt_client_id="client").require_trakt()

    def test_require_metadata_and_tmdb(self):
        """Test metadata and recommendation key checks."""
        with pytest.raises(SettingsError, match="OMDB_API_KEY"):
            Settings().require_metadata()
        with pytest.raises(SettingsError, match="TMDB_API_KEY"):
            Settings().require_tmdb()

        Settings(omdb_api_key="o").require_metadata()
        Settings(tmdb_api_key="t").require_tmdb()


class TestDetermineConfigPath:
    """Test config path determination logic."""

    def test_determine_config_path_explicit(self):
        """Test explicit config path takes precedence."""
        explicit_path = Path("/custom/config.toml")
        assert _determine_config_path(explicit_path) == explicit_path

    def test_determine_config_path_from_env(self):
        """Test config path from environment variable."""
        with patch.dict(os.environ, {"MOVIE_SHELF_CONFIG": "~/shelf/config.toml"}):
            result = _determine_config_path(None)
            assert result == Path("~/shelf/config.toml").expanduser().resolve()

    def test_determine_config_path_default_exists(self):
        """Test default config path when file exists."""
        with patch.dict(os.environ, {}, clear=True):
            with patch("pathlib.Path.exists", return_value=True):
                result = _determine_config_path(None)
        assert result == Path.home() / ".config" / "movie-shelf" / "config.toml"

    def test_determine_config_path_default_not_exists(self):
        """Test default config path when file does not exist."""
        with patch.dict(os.environ, {}, clear=True):
            with patch("pathlib.Path.exists", return_value=False):
                assert _determine_config_path(None) is None


class TestFlattenToml:
    """Test TOML configuration flattening."""

    def test_flatten_toml_empty(self):
        assert _flatten_toml({}) == {}

    def test_flatten_toml_sections(self):
        payload = {
            "trakt": {"client_id": "abc", "max_pages": 3},
            "metadata": {"omdb_api_key": "omdb", "timeout": 2.5},
            "storage": {"data_dir": "~/shelf", "redis_prefix": "shelf"},
            "library": {"default_user": "sam", "page_size": 24},
            "mcp": {"port": 9000},
            "unknown": {"ignored": True},
        }

        result = _flatten_toml(payload)

        assert result == {
            "trakt_client_id": "abc",
            "trakt_max_pages": 3,
            "omdb_api_key": "omdb",
            "enrichment_timeout": 2.5,
            "data_dir": Path("~/shelf").expanduser(),
            "redis_prefix": "shelf",
            "default_user": "sam",
            "page_size": 24,
            "mcp_port": 9000,
        }

    def test_flatten_toml_ignores_non_table_sections(self):
        assert _flatten_toml({"trakt": "not-a-table"}) == {}


class TestCollectEnvOverrides:
    """Test environment variable collection."""

    def test_collect_env_overrides_empty(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _collect_env_overrides() == {}

    def test_collect_env_overrides_typed_values(self):
        env_vars = {
            "TRAKT_ACCESS_TOKEN": "token",
            "TRAKT_MAX_PAGES": "4",
            "ENRICHMENT_TIMEOUT": "1.5",
            "MOVIE_SHELF_DATA_DIR": "/srv/shelf",
            "MOVIE_SHELF_REDIS_URL": "",
            "MCP_PORT": "8100",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            result = _collect_env_overrides()

        assert result == {
            "trakt_access_token": "token",
            "trakt_max_pages": 4,
            "enrichment_timeout": 1.5,
            "data_dir": Path("/srv/shelf"),
            "redis_url": None,
            "mcp_port": 8100,
        }


class TestLoadSettings:
    """Test settings loading functionality."""

    def test_load_settings_from_env_only(self):
        env_vars = {"TRAKT_CLIENT_ID": "client", "OMDB_API_KEY": "omdb"}

        with patch.dict(os.environ, env_vars, clear=True):
            with patch("movie_shelf.config.settings._determine_config_path", return_value=None):
                result = load_settings(load_env=False)

        assert isinstance(result, SettingsLoadResult)
        assert result.settings.trakt_client_id == "client"
        assert result.settings.omdb_api_key == "omdb"
        assert result.source_path is None

    def test_load_settings_env_overrides_toml(self):
        toml_content = """
        [trakt]
        client_id = "toml-client"
        access_token = "toml-token"

        [library]
        page_size = 10
        """

        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write(toml_content)
            config_path = Path(f.name)

        try:
            with patch.dict(os.environ, {"TRAKT_ACCESS_TOKEN": "env-token"}, clear=True):
                result = load_settings(config_path=config_path, load_env=False)

            assert result.settings.trakt_client_id == "toml-client"
            assert result.settings.trakt_access_token == "env-token"
            assert result.settings.page_size == 10
            assert result.source_path == config_path
        finally:
            config_path.unlink()

    def test_load_settings_without_dotenv(self):
        with patch("movie_shelf.config.settings.load_dotenv") as mock_load_dotenv:
            with patch("movie_shelf.config.settings._determine_config_path", return_value=None):
                with patch.dict(os.environ, {}, clear=True):
                    load_settings(load_env=False)
        mock_load_dotenv.assert_not_called()

    def test_load_settings_malformed_toml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write("[trakt\nclient_id = 'missing bracket'\n")
            config_path = Path(f.name)

        try:
            with patch.dict(os.environ, {}, clear=True):
                with pytest.raises(SettingsError, match="Invalid TOML"):
                    load_settings(config_path=config_path, load_env=False)
        finally:
            config_path.unlink()

    def test_load_settings_invalid_values(self):
        with patch.dict(os.environ, {"MOVIE_SHELF_PAGE_SIZE": "0"}, clear=True):
            with patch("movie_shelf.config.settings._determine_config_path", return_value=None):
                with pytest.raises(SettingsError):
                    load_settings(load_env=False)
