"""Microsoft Graph API wrapper.

Attaches a bearer token to every request and turns non-2xx responses into
ApiError. Token acquisition is delegated to a provider callable so this
module never touches the token cache.
"""

import logging
from typing import Any, Callable

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# Error bodies are truncated to keep CLI diagnostics readable
MAX_ERROR_BODY = 200


class ApiError(Exception):
    """A non-2xx response from the resource API."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body[:MAX_ERROR_BODY]
        super().__init__(f"Graph API error ({status_code}): {self.body}")


class GraphClient:
    """Authenticated GET requests against Microsoft Graph."""

    def __init__(
        self,
        token_provider: Callable[[], str],
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the GraphClient.

        Args:
            token_provider: Returns a valid access token (called per request).
            base_url: Graph API base URL.
            timeout: Request timeout in seconds.
        """
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def get(self, endpoint: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """GET a Graph endpoint and return the decoded JSON body.

        Args:
            endpoint: Path relative to the base URL (e.g. "/me/messages").
            params: Optional query parameters.

        Returns:
            The decoded JSON response.

        Raises:
            AuthError: If no access token can be resolved.
            ApiError: On a non-2xx response.
            requests.RequestException: If Graph is unreachable.
        """
        token = self.token_provider()
        url = f"{self.base_url}{endpoint}"

        logger.info("GET %s", url)
        response = requests.get(
            url,
            params=params,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
        )

        if not response.ok:
            logger.error("Graph API returned %d for %s", response.status_code, endpoint)
            raise ApiError(response.status_code, response.text)

        return response.json()
