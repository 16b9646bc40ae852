"""Token Manager - silent access token acquisition.

Resolves a usable access token from the on-disk cache. When the cached access
token is missing or about to expire, msal redeems the cached refresh token and
the updated cache is written back. A cache hit touches neither the network
nor the file.
"""

import logging
import time
from typing import Any, Callable

import msal
import requests

from auth.errors import NoAccount, NoCredentials, RefreshFailed, RefreshUnavailable
from auth.identity_client import IdentityClient
from auth.token_cache import (
    find_access_token,
    has_refresh_token,
    list_accounts,
    load_cache,
    save_cache,
)
from config.settings import GRAPH_SCOPES

logger = logging.getLogger(__name__)


class TokenManager:
    """Hands out valid access tokens for the cached account."""

    def __init__(
        self,
        identity: IdentityClient,
        cache_paths: list[str],
        scopes: list[str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the TokenManager.

        Args:
            identity: Identity provider settings and msal application factory.
            cache_paths: Token cache paths, highest priority first.
            scopes: Scopes the access token must cover.
            clock: Returns the current epoch time.
        """
        self.identity = identity
        self.cache_paths = cache_paths
        self.scopes = scopes or list(GRAPH_SCOPES)
        self._clock = clock

    def resolve_access_token(self) -> str:
        """Return a valid access token, refreshing it if needed.

        Returns:
            The access token secret.

        Raises:
            NoCredentials: The cache is missing or corrupt.
            NoAccount: The cache holds no account.
            RefreshUnavailable: No usable access token and no refresh token.
            RefreshFailed: The identity provider rejected the refresh.
        """
        cache = load_cache(self.cache_paths)
        if cache is None:
            raise NoCredentials()

        accounts = list_accounts(cache)
        if not accounts:
            raise NoAccount()
        if len(accounts) > 1:
            logger.warning(
                "Token cache holds %d accounts; using %s",
                len(accounts),
                accounts[0].get("username") or accounts[0]["home_account_id"],
            )
        account = accounts[0]

        cached = find_access_token(
            cache, account, self.identity.client_id, self.scopes, int(self._clock())
        )
        if cached is not None:
            logger.info("Using cached access token")
            return cached["secret"]

        if not has_refresh_token(cache, account):
            raise RefreshUnavailable()

        return self._refresh(cache, account)

    def _refresh(self, cache: msal.SerializableTokenCache, account: dict[str, Any]) -> str:
        """Let msal redeem the refresh token, then persist what it cached."""
        logger.info("Access token expired or missing; refreshing")

        try:
            app = self.identity.build_application(cache)
            result = app.acquire_token_silent_with_error(self.scopes, account=account)
        except requests.RequestException as e:
            raise RefreshFailed("request_failed", str(e)) from e
        except ValueError as e:
            raise RefreshFailed("invalid_response", str(e)) from e

        if result is None:
            raise RefreshUnavailable()
        if "error" in result or not result.get("access_token"):
            error = result.get("error", "invalid_response")
            description = result.get("error_description", "")
            logger.error("Refresh rejected by identity provider: %s", error)
            raise RefreshFailed(error, description)

        if cache.has_state_changed:
            save_cache(cache, self.cache_paths)

        logger.info("Access token refreshed (expires in %ss)", result.get("expires_in"))
        return result["access_token"]
