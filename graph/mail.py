"""Mail queries and text rendering."""

import logging
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from graph.client import GraphClient

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = "id,subject,from,receivedDateTime,isRead,importance,bodyPreview,hasAttachments"

PREVIEW_LENGTH = 80


def build_message_query(
    unread: bool = False,
    priority: bool = False,
    limit: int = 20,
    search: str | None = None,
) -> dict[str, str]:
    """Build /me/messages query parameters.

    Args:
        unread: Only unread messages.
        priority: Only high-importance messages.
        limit: Maximum number of messages.
        search: Free-text search query.

    Returns:
        Query parameter dict.
    """
    params = {
        "$top": str(limit),
        "$select": MESSAGE_FIELDS,
    }

    filters = []
    if unread:
        filters.append("isRead eq false")
    if priority:
        filters.append("importance eq 'high'")
    if filters:
        params["$filter"] = " and ".join(filters)

    # Graph rejects $orderby combined with $search
    if search:
        params["$search"] = f'"{search}"'
    else:
        params["$orderby"] = "receivedDateTime desc"

    return params


def fetch_messages(client: GraphClient, **query: Any) -> list[dict[str, Any]]:
    """Fetch messages from the signed-in user's mailbox.

    Args:
        client: Authenticated Graph client.
        query: Keyword arguments for build_message_query.

    Returns:
        List of raw message dicts from the Graph API.
    """
    response = client.get("/me/messages", params=build_message_query(**query))
    messages = response.get("value", [])
    logger.info("Retrieved %d messages", len(messages))
    return messages


def _sender(message: dict[str, Any]) -> str:
    address = (message.get("from") or {}).get("emailAddress") or {}
    return address.get("name") or address.get("address") or "Unknown"


def format_messages(messages: list[dict[str, Any]], tz_name: str) -> str:
    """Render messages as text, one block per message."""
    if not messages:
        return "No emails found."

    tz = ZoneInfo(tz_name)
    lines: list[str] = []

    for message in messages:
        markers = ""
        if not message.get("isRead"):
            markers += "*"
        if message.get("importance") == "high":
            markers += "!"
        attachment = " [attachment]" if message.get("hasAttachments") else ""

        lines.append(f"{markers:<2} {message.get('subject') or '(No subject)'}{attachment}")
        lines.append(f"   From: {_sender(message)}")

        received = message.get("receivedDateTime")
        if received:
            received_dt = datetime.fromisoformat(received.replace("Z", "+00:00")).astimezone(tz)
            lines.append(f"   Date: {received_dt:%b} {received_dt.day} {received_dt:%H:%M}")

        preview = message.get("bodyPreview")
        if preview:
            snippet = preview[:PREVIEW_LENGTH].replace("\n", " ")
            lines.append(f"   {snippet}...")
        lines.append("")

    return "\n".join(lines)
