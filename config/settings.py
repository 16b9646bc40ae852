"""Global Settings - Loads configuration from environment variables.

Centralizes all configuration so the auth and Graph modules don't read
env vars directly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Delegated permissions the CLI needs from Microsoft Graph
GRAPH_SCOPES = ["Calendars.Read", "Mail.Read", "Mail.ReadWrite"]

# Required so the identity provider issues a refresh token
OFFLINE_ACCESS_SCOPE = "offline_access"

DEFAULT_TOKEN_CACHE_PATH = str(Path(__file__).parent.parent / ".m365-token-cache.json")

# Settings field -> environment variable, used for fail-fast messages
ENV_VARS = {
    "tenant_id": "MS365_MCP_TENANT_ID",
    "client_id": "MS365_MCP_CLIENT_ID",
    "client_secret": "MS365_MCP_CLIENT_SECRET",
}


class ConfigError(ValueError):
    """Raised when required configuration is missing or invalid."""


@dataclass
class Settings:
    """Application-wide settings loaded from environment variables."""

    # App registration
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    # Endpoints
    authority_host: str = "https://login.microsoftonline.com"
    graph_base: str = "https://graph.microsoft.com/v1.0"

    # Token cache locations, checked in order; the first one is written
    token_cache_paths: list[str] = field(default_factory=lambda: [DEFAULT_TOKEN_CACHE_PATH])

    # User preferences
    user_timezone: str = "UTC"

    http_timeout: int = 30

    def require(self, *names: str) -> None:
        """Fail fast when any of the named settings is empty.

        Args:
            names: Settings field names (e.g. "tenant_id").

        Raises:
            ConfigError: Listing the environment variables that must be set.
        """
        missing = [ENV_VARS.get(name, name) for name in names if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")


def _parse_cache_paths(raw: str) -> list[str]:
    paths = [os.path.expanduser(p.strip()) for p in raw.split(os.pathsep) if p.strip()]
    return paths or [DEFAULT_TOKEN_CACHE_PATH]


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults.

    Environment variables:
        MS365_MCP_TENANT_ID: Azure AD tenant (directory) ID
        MS365_MCP_CLIENT_ID: Application (client) ID of the app registration
        MS365_MCP_CLIENT_SECRET: Client secret used for the refresh-token grant
        M365_AUTHORITY_HOST: Identity provider base URL
        M365_GRAPH_BASE: Microsoft Graph base URL
        M365_TOKEN_CACHE_PATHS: Token cache paths separated by os.pathsep,
            highest priority first
        USER_TIMEZONE: IANA timezone string
        M365_HTTP_TIMEOUT: Request timeout in seconds

    Returns:
        A populated Settings instance.

    Raises:
        ConfigError: If a numeric variable can't be parsed.
    """
    return Settings(
        tenant_id=os.getenv("MS365_MCP_TENANT_ID", "").strip(),
        client_id=os.getenv("MS365_MCP_CLIENT_ID", "").strip(),
        client_secret=os.getenv("MS365_MCP_CLIENT_SECRET", "").strip(),
        authority_host=os.getenv("M365_AUTHORITY_HOST", "https://login.microsoftonline.com").rstrip("/"),
        graph_base=os.getenv("M365_GRAPH_BASE", "https://graph.microsoft.com/v1.0").rstrip("/"),
        token_cache_paths=_parse_cache_paths(os.getenv("M365_TOKEN_CACHE_PATHS", "")),
        user_timezone=os.getenv("USER_TIMEZONE", "UTC"),
        http_timeout=_parse_int("M365_HTTP_TIMEOUT", "30"),
    )
