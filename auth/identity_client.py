"""Microsoft identity platform wrapper.

Handles the form-encoded calls to the v2.0 device-code and token endpoints,
and builds the msal application used for silent refresh. This module
isolates the HTTP details so the token manager and the device-code flow
only deal with decoded payloads.
"""

import logging
from typing import Any

import msal
import requests

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"


class IdentityClient:
    """Talks to the /oauth2/v2.0 endpoints of one tenant."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str = "",
        authority_host: str = "https://login.microsoftonline.com",
        timeout: int = 30,
    ) -> None:
        """Initialize the IdentityClient.

        Args:
            tenant_id: Azure AD tenant (directory) ID.
            client_id: Application (client) ID.
            client_secret: Client secret; sent with token requests when set.
            authority_host: Identity provider base URL.
            timeout: Request timeout in seconds.
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority = f"{authority_host.rstrip('/')}/{tenant_id}"
        self.timeout = timeout

    @property
    def device_code_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/devicecode"

    @property
    def token_url(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    def build_application(
        self, token_cache: msal.SerializableTokenCache
    ) -> msal.ConfidentialClientApplication:
        """Create the msal application that refreshes tokens in ``token_cache``.

        msal fetches the tenant's OpenID configuration on construction.

        Raises:
            requests.RequestException: If the authority is unreachable.
            ValueError: If the authority rejects the tenant.
        """
        logger.info("Building msal application for %s", self.authority)
        return msal.ConfidentialClientApplication(
            self.client_id,
            client_credential=self.client_secret,
            authority=self.authority,
            token_cache=token_cache,
            timeout=self.timeout,
        )

    def request_device_code(self, scopes: str) -> requests.Response:
        """POST to the device-code endpoint.

        Args:
            scopes: Space-separated scopes to request.

        Returns:
            The raw response; the caller decides how to treat non-2xx.

        Raises:
            requests.RequestException: If the endpoint is unreachable.
        """
        logger.info("Requesting device code from %s", self.device_code_url)
        return requests.post(
            self.device_code_url,
            data={"client_id": self.client_id, "scope": scopes},
            timeout=self.timeout,
        )

    def redeem_device_code(self, device_code: str) -> dict[str, Any]:
        """Poll the token endpoint once with a device code.

        The client secret goes along when set, for app registrations that
        are confidential clients.

        Returns:
            The decoded payload: either tokens or an OAuth error
            ("authorization_pending", "slow_down", ...).

        Raises:
            requests.RequestException: If the endpoint is unreachable.
            ValueError: If the response isn't JSON.
        """
        body = {
            "grant_type": DEVICE_CODE_GRANT,
            "client_id": self.client_id,
            "device_code": device_code,
            "client_info": "1",
        }
        if self.client_secret:
            body["client_secret"] = self.client_secret

        # OAuth errors come back as 400 with a JSON body, so no raise_for_status
        response = requests.post(self.token_url, data=body, timeout=self.timeout)
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected token endpoint response (HTTP {response.status_code})")
        return data
