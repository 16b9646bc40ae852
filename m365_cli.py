"""M365 CLI - Microsoft Graph calendar and mail for scheduled jobs.

Resolves an access token from the local token cache (refreshing it silently
when needed), queries Microsoft Graph, and prints the result as text or JSON.

Usage:
    python m365_cli.py calendar --today
    python m365_cli.py calendar --tomorrow --json
    python m365_cli.py email --unread --priority
    python m365_cli.py email --unread --json --limit 10
    python m365_cli.py me
"""

import argparse
import json
import logging
import sys
from typing import Any
from zoneinfo import ZoneInfoNotFoundError

import requests

from auth.errors import AuthError
from auth.identity_client import IdentityClient
from auth.token_manager import TokenManager
from config.settings import ConfigError, Settings, load_settings
from graph.calendar import calculate_range, fetch_events, format_events
from graph.client import ApiError, GraphClient
from graph.mail import fetch_messages, format_messages
from graph.profile import fetch_profile, format_profile

logger = logging.getLogger("m365_cli")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with calendar, email, and me subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", action="store_true", help="Output as JSON.")
    common.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr.")

    parser = argparse.ArgumentParser(description="Microsoft Graph calendar and mail CLI.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    calendar = subparsers.add_parser("calendar", parents=[common], help="Get calendar events.")
    window = calendar.add_mutually_exclusive_group()
    window.add_argument("--today", action="store_const", const="today", dest="range",
                        help="Today's events (default).")
    window.add_argument("--tomorrow", action="store_const", const="tomorrow", dest="range",
                        help="Tomorrow's events.")
    window.add_argument("--week", action="store_const", const="week", dest="range",
                        help="Next 7 days.")
    calendar.set_defaults(range="today")

    email = subparsers.add_parser("email", parents=[common], help="Get emails.")
    email.add_argument("--unread", action="store_true", help="Unread only.")
    email.add_argument("--priority", action="store_true", help="High priority only.")
    email.add_argument("--limit", type=int, default=20, help="Number of results (default: 20).")
    email.add_argument("--search", default=None, help="Search emails.")

    subparsers.add_parser("me", parents=[common], help="Current user info.")
    return parser


def build_graph_client(settings: Settings) -> GraphClient:
    """Wire the Token Manager into a Graph client.

    Raises:
        ConfigError: If tenant, client ID, or client secret is missing.
    """
    settings.require("tenant_id", "client_id", "client_secret")

    identity = IdentityClient(
        tenant_id=settings.tenant_id,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        authority_host=settings.authority_host,
        timeout=settings.http_timeout,
    )
    token_manager = TokenManager(
        identity,
        cache_paths=settings.token_cache_paths,
    )
    return GraphClient(
        token_manager.resolve_access_token,
        base_url=settings.graph_base,
        timeout=settings.http_timeout,
    )


def run_command(args: argparse.Namespace, settings: Settings) -> tuple[Any, str]:
    """Execute a subcommand.

    Returns:
        Tuple of (raw JSON-serializable result, rendered text).
    """
    client = build_graph_client(settings)

    if args.command == "calendar":
        start, end = calculate_range(args.range, settings.user_timezone)
        events = fetch_events(client, start, end)
        return events, format_events(events, settings.user_timezone)

    if args.command == "email":
        messages = fetch_messages(
            client,
            unread=args.unread,
            priority=args.priority,
            limit=args.limit,
            search=args.search,
        )
        return messages, format_messages(messages, settings.user_timezone)

    profile = fetch_profile(client)
    return profile, format_profile(profile)


def _report_error(error: Exception, as_json: bool) -> None:
    """Print an error as a JSON object on stdout, or as text on stderr."""
    if as_json:
        print(json.dumps({"error": str(error)}))
    else:
        print(f"Error: {error}", file=sys.stderr)


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run the command, and print the result.

    Returns:
        Process exit code: 0 on success, 1 on any handled error.
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        settings = load_settings()
        result, text = run_command(args, settings)
    except (
        ConfigError,
        AuthError,
        ApiError,
        requests.RequestException,
        OSError,
        ValueError,
        ZoneInfoNotFoundError,
    ) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _report_error(e, args.json)
        return 1
    except Exception as e:
        logger.error("Unexpected failure in %s: %s", args.command, e, exc_info=True)
        _report_error(e, args.json)
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(text)
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
