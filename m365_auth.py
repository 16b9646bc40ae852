"""Microsoft 365 Device Code Authentication.

Run this once to sign in with the device-code flow. Prints a URL and a code
to enter in any browser, waits for sign-in, then saves the token cache for
future use by m365_cli.py.

Usage:
    python m365_auth.py
"""

import logging
import sys

import requests

from auth.device_code import DeviceCodeAuthenticator
from auth.errors import AuthError
from auth.identity_client import IdentityClient
from config.settings import ConfigError, load_settings

logger = logging.getLogger("m365_auth")


def _print_dot() -> None:
    sys.stdout.write(".")
    sys.stdout.flush()


def main() -> None:
    """Run the device-code flow and save the token cache."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        settings = load_settings()
        settings.require("tenant_id", "client_id")
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Starting Microsoft device code authentication...")
    print()

    identity = IdentityClient(
        tenant_id=settings.tenant_id,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        authority_host=settings.authority_host,
        timeout=settings.http_timeout,
    )
    authenticator = DeviceCodeAuthenticator(
        identity,
        cache_paths=settings.token_cache_paths,
        graph_base=settings.graph_base,
        on_pending=_print_dot,
    )

    try:
        authenticator.run()
    except (AuthError, requests.RequestException, OSError) as e:
        print(file=sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print("Authentication successful!")
    print(f"Tokens saved to: {settings.token_cache_paths[0]}")
    print("You can now run: python m365_cli.py")


if __name__ == "__main__":
    main()
