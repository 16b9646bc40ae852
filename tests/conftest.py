"""Shared fixtures: token cache builders, fake clock, and mock HTTP responses."""

import base64
import json
from typing import Any, Callable
from unittest.mock import MagicMock

import msal
import pytest

from auth.identity_client import DEVICE_CODE_GRANT
from auth.token_cache import add_token_response

NOW = 1_700_000_000
TENANT_ID = "tenant-1"
CLIENT_ID = "client-1"
CLIENT_SECRET = "secret-1"
SCOPES = "Calendars.Read Mail.Read Mail.ReadWrite offline_access"
TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token"
HOME_ACCOUNT_ID = f"user-oid.{TENANT_ID}"


def _b64(data: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def make_id_token(**claims: Any) -> str:
    """Build an unsigned JWT carrying the given claims."""
    return ".".join([_b64({"alg": "none", "typ": "JWT"}), _b64(claims), ""])


def make_token_response(
    access_token: str = "AT1",
    refresh_token: str | None = "RT1",
    scope: str = SCOPES,
    **extra: Any,
) -> dict[str, Any]:
    """A token endpoint response for the test user."""
    response = {
        "access_token": access_token,
        "expires_in": 3600,
        "token_type": "Bearer",
        "scope": scope,
        "client_info": _b64({"uid": "user-oid", "utid": TENANT_ID}),
        "id_token": make_id_token(
            sub="user-sub",
            oid="user-oid",
            tid=TENANT_ID,
            preferred_username="ada@example.com",
            name="Ada Lovelace",
        ),
        **extra,
    }
    if refresh_token:
        response["refresh_token"] = refresh_token
    return response


def empty_document() -> dict[str, Any]:
    return {"Account": {}, "AccessToken": {}, "RefreshToken": {}, "IdToken": {}, "AppMetadata": {}}


def to_cache(document: dict[str, Any]) -> msal.SerializableTokenCache:
    cache = msal.SerializableTokenCache()
    cache.deserialize(json.dumps(document))
    return cache


class FakeClock:
    """Deterministic clock; sleep() advances time instead of blocking."""

    def __init__(self, start: float = NOW) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_file(tmp_path):
    return tmp_path / "token-cache.json"


@pytest.fixture
def make_cache() -> Callable[..., dict[str, Any]]:
    """Factory for cache documents with one account, as msal writes them.

    The access token expires at ``expires_on``; ``refresh_token=None`` leaves
    the RefreshToken map empty.
    """

    def _make(
        access_token: str = "AT1",
        expires_on: int = NOW + 3600,
        refresh_token: str | None = "RT1",
        scope: str = SCOPES,
    ) -> dict[str, Any]:
        cache = msal.SerializableTokenCache()
        add_token_response(
            cache,
            make_token_response(access_token, refresh_token, scope),
            client_id=CLIENT_ID,
            scopes=SCOPES.split(),
            token_endpoint=TOKEN_URL,
            grant_type=DEVICE_CODE_GRANT,
            now=expires_on - 3600,
        )
        document = empty_document()
        document.update(json.loads(cache.serialize()))
        return document

    return _make


@pytest.fixture
def mock_response() -> Callable[..., MagicMock]:
    """Factory for requests.Response stand-ins."""

    def _make(payload: Any = None, status_code: int = 200, text: str | None = None) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.json.return_value = payload
        response.text = text if text is not None else json.dumps(payload)
        return response

    return _make
