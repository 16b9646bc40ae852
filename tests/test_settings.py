"""Tests for global settings."""

import os

import pytest

from config.settings import DEFAULT_TOKEN_CACHE_PATH, ConfigError, Settings, load_settings

ALL_VARS = [
    "MS365_MCP_TENANT_ID", "MS365_MCP_CLIENT_ID", "MS365_MCP_CLIENT_SECRET",
    "M365_AUTHORITY_HOST", "M365_GRAPH_BASE", "M365_TOKEN_CACHE_PATHS",
    "USER_TIMEZONE", "M365_HTTP_TIMEOUT",
]


class TestLoadSettings:
    def test_defaults(self, monkeypatch) -> None:
        # Clear any existing env vars
        for var in ALL_VARS:
            monkeypatch.delenv(var, raising=False)

        settings = load_settings()
        assert settings.tenant_id == ""
        assert settings.authority_host == "https://login.microsoftonline.com"
        assert settings.graph_base == "https://graph.microsoft.com/v1.0"
        assert settings.token_cache_paths == [DEFAULT_TOKEN_CACHE_PATH]
        assert settings.user_timezone == "UTC"
        assert settings.http_timeout == 30

    def test_credentials_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("MS365_MCP_TENANT_ID", "tenant-1")
        monkeypatch.setenv("MS365_MCP_CLIENT_ID", " client-1 ")
        monkeypatch.setenv("MS365_MCP_CLIENT_SECRET", "secret-1")

        settings = load_settings()
        assert settings.tenant_id == "tenant-1"
        assert settings.client_id == "client-1"
        assert settings.client_secret == "secret-1"

    def test_cache_paths_are_ordered(self, monkeypatch) -> None:
        monkeypatch.setenv("M365_TOKEN_CACHE_PATHS", os.pathsep.join(["/a/cache.json", "/b/cache.json"]))

        settings = load_settings()
        assert settings.token_cache_paths == ["/a/cache.json", "/b/cache.json"]

    def test_cache_paths_expand_home(self, monkeypatch) -> None:
        monkeypatch.setenv("HOME", "/home/tester")
        monkeypatch.setenv("M365_TOKEN_CACHE_PATHS", "~/.m365/cache.json")

        settings = load_settings()
        assert settings.token_cache_paths == ["/home/tester/.m365/cache.json"]

    def test_blank_cache_paths_fall_back_to_default(self, monkeypatch) -> None:
        monkeypatch.setenv("M365_TOKEN_CACHE_PATHS", os.pathsep)

        settings = load_settings()
        assert settings.token_cache_paths == [DEFAULT_TOKEN_CACHE_PATH]

    def test_custom_timeout(self, monkeypatch) -> None:
        monkeypatch.setenv("M365_HTTP_TIMEOUT", "10")

        settings = load_settings()
        assert settings.http_timeout == 10

    def test_invalid_integer_raises(self, monkeypatch) -> None:
        monkeypatch.setenv("M365_HTTP_TIMEOUT", "thirty")

        with pytest.raises(ConfigError, match="M365_HTTP_TIMEOUT"):
            load_settings()


class TestRequire:
    def test_all_present(self) -> None:
        settings = Settings(tenant_id="t", client_id="c", client_secret="s")
        settings.require("tenant_id", "client_id", "client_secret")

    def test_missing_values_named(self) -> None:
        settings = Settings(tenant_id="t")

        with pytest.raises(ConfigError) as exc_info:
            settings.require("tenant_id", "client_id", "client_secret")

        message = str(exc_info.value)
        assert "MS365_MCP_CLIENT_ID" in message
        assert "MS365_MCP_CLIENT_SECRET" in message
        assert "MS365_MCP_TENANT_ID" not in message
