"""Device-Code Authenticator - interactive bootstrap.

Runs the OAuth2 device authorization grant once to obtain the initial token
set, then writes a fresh token cache for the Token Manager to use.

States: REQUESTING_CODE -> POLLING -> SUCCEEDED | EXPIRED | FAILED
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, NoReturn

import msal
import requests

from auth.errors import DeviceFlowExpired, DeviceFlowFailed
from auth.identity_client import DEVICE_CODE_GRANT, IdentityClient
from auth.token_cache import add_token_response, list_accounts, save_cache, update_account
from config.settings import GRAPH_SCOPES, OFFLINE_ACCESS_SCOPE
from graph.client import ApiError, GraphClient
from graph.profile import fetch_profile

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5
SLOW_DOWN_INCREMENT = 5

# Used when the provider omits expires_in
DEFAULT_EXPIRES_IN = 900


class DeviceFlowState(str, Enum):
    REQUESTING_CODE = "requesting_code"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    FAILED = "failed"


class DeviceCodeAuthenticator:
    """Obtains the initial token set through the device-code flow."""

    def __init__(
        self,
        identity: IdentityClient,
        cache_paths: list[str],
        graph_base: str = "https://graph.microsoft.com/v1.0",
        scopes: list[str] | None = None,
        display: Callable[[str], None] = print,
        on_pending: Callable[[], None] | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the DeviceCodeAuthenticator.

        Args:
            identity: Client for the device-code and token endpoints.
            cache_paths: Token cache paths; the first one is written.
            graph_base: Graph base URL for the profile lookup.
            scopes: Graph scopes to request (offline_access is always added).
            display: Shows instructions to the operator.
            on_pending: Called after each "authorization_pending" poll.
            clock: Returns the current epoch time (default time.time).
            sleep: Waits the given number of seconds (default time.sleep).
        """
        self.identity = identity
        self.cache_paths = cache_paths
        self.graph_base = graph_base
        self.scopes = (scopes or list(GRAPH_SCOPES)) + [OFFLINE_ACCESS_SCOPE]
        self.display = display
        self.on_pending = on_pending
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep
        self.state = DeviceFlowState.REQUESTING_CODE

    def run(self) -> msal.SerializableTokenCache:
        """Run the flow to completion and persist the resulting cache.

        Returns:
            The token cache that was written.

        Raises:
            DeviceFlowFailed: The provider rejected the request or the poll,
                or the cache could not be written.
            DeviceFlowExpired: The code expired before sign-in completed.
        """
        self.state = DeviceFlowState.REQUESTING_CODE
        flow = self._request_code()
        self._show_instructions(flow)

        tokens = self._poll(flow)

        cache = msal.SerializableTokenCache()
        try:
            add_token_response(
                cache,
                tokens,
                client_id=self.identity.client_id,
                scopes=self.scopes,
                token_endpoint=self.identity.token_url,
                grant_type=DEVICE_CODE_GRANT,
                now=int(self._clock()),
            )
        except (KeyError, ValueError) as e:
            self._fail(f"Invalid token response: {e}")
        try:
            save_cache(cache, self.cache_paths)
        except OSError as e:
            self._fail(f"Could not save token cache: {e}")
        self.state = DeviceFlowState.SUCCEEDED

        self._enrich_account(cache, tokens["access_token"])
        return cache

    def _request_code(self) -> dict[str, Any]:
        try:
            response = self.identity.request_device_code(" ".join(self.scopes))
        except requests.RequestException as e:
            self._fail(str(e))

        if not response.ok:
            self._fail(f"Failed to get device code: {response.text}")

        try:
            flow = response.json()
        except ValueError:
            self._fail(f"Invalid device code response: {response.text[:200]}")

        if not isinstance(flow, dict) or "device_code" not in flow:
            self._fail(f"Invalid device code response: {response.text[:200]}")
        return flow

    def _show_instructions(self, flow: dict[str, Any]) -> None:
        expires_minutes = int(flow.get("expires_in") or DEFAULT_EXPIRES_IN) // 60
        self.display("-" * 60)
        self.display("To sign in, use a web browser to open:")
        self.display(f"    {flow.get('verification_uri', '')}")
        self.display(f"And enter the code: {flow.get('user_code', '')}")
        self.display("-" * 60)
        self.display(f"Waiting for authentication (expires in {expires_minutes} minutes)...")

    def _poll(self, flow: dict[str, Any]) -> dict[str, Any]:
        """Poll the token endpoint until the user finishes or the code expires."""
        self.state = DeviceFlowState.POLLING
        interval = int(flow.get("interval") or DEFAULT_INTERVAL)
        deadline = self._clock() + int(flow.get("expires_in") or DEFAULT_EXPIRES_IN)

        while self._clock() < deadline:
            self._sleep(interval)
            if self._clock() >= deadline:
                break

            try:
                result = self.identity.redeem_device_code(flow["device_code"])
            except (requests.RequestException, ValueError) as e:
                self._fail(str(e))

            error = result.get("error")
            if error == "authorization_pending":
                logger.debug("Authorization pending")
                if self.on_pending:
                    self.on_pending()
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_INCREMENT
                logger.info("Provider asked to slow down; polling every %ds", interval)
                continue
            if error == "expired_token":
                self._expire()
            if error:
                self._fail(result.get("error_description") or error)
            if not result.get("access_token"):
                self._fail("Token response did not include an access token")
            return result

        self._expire()

    def _enrich_account(self, cache: msal.SerializableTokenCache, access_token: str) -> None:
        """Fill in the account's username and display name from /me.

        Best effort: the cache is already saved, so failures are only logged.
        """
        client = GraphClient(
            lambda: access_token,
            base_url=self.graph_base,
            timeout=self.identity.timeout,
        )
        try:
            profile = fetch_profile(client)
        except (ApiError, requests.RequestException, ValueError) as e:
            logger.warning("Could not fetch user profile: %s", e)
            return

        accounts = list_accounts(cache)
        if not accounts:
            return
        account = accounts[0]
        username = (
            profile.get("userPrincipalName") or profile.get("mail") or account.get("username", "")
        )
        display_name = profile.get("displayName") or account["display_name"]
        update_account(cache, account, username=username, display_name=display_name)

        try:
            save_cache(cache, self.cache_paths)
        except OSError as e:
            logger.warning("Could not save profile details to token cache: %s", e)
            return

        self.display(f"Signed in as: {display_name} ({username})")

    def _expire(self) -> NoReturn:
        self.state = DeviceFlowState.EXPIRED
        raise DeviceFlowExpired()

    def _fail(self, detail: str) -> NoReturn:
        self.state = DeviceFlowState.FAILED
        raise DeviceFlowFailed(detail)
