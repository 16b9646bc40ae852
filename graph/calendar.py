"""Calendar queries and text rendering.

Builds /me/calendarView requests for a day range and renders the returned
events grouped by day in the user's timezone.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from graph.client import GraphClient

logger = logging.getLogger(__name__)

EVENT_FIELDS = "id,subject,start,end,location,isAllDay,organizer,webLink"

RANGE_DAYS = {"today": (0, 1), "tomorrow": (1, 1), "week": (0, 7)}


def calculate_range(
    which: str,
    tz_name: str,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Calculate the [start, end) window for a named range.

    Windows start at local midnight in the given timezone.

    Args:
        which: "today", "tomorrow", or "week" (next 7 days).
        tz_name: IANA timezone string.
        now: Reference time (defaults to the current time).

    Returns:
        Tuple of timezone-aware (start, end) datetimes.
    """
    offset, length = RANGE_DAYS[which]
    tz = ZoneInfo(tz_name)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = midnight + timedelta(days=offset)
    return start, start + timedelta(days=length)


def fetch_events(client: GraphClient, start: datetime, end: datetime) -> list[dict[str, Any]]:
    """Fetch calendar events overlapping a time window.

    Args:
        client: Authenticated Graph client.
        start: Window start (timezone-aware).
        end: Window end (timezone-aware).

    Returns:
        List of raw event dicts from the Graph API.
    """
    params = {
        "startDateTime": start.astimezone(timezone.utc).isoformat(),
        "endDateTime": end.astimezone(timezone.utc).isoformat(),
        "$orderby": "start/dateTime",
        "$top": "50",
        "$select": EVENT_FIELDS,
    }

    response = client.get("/me/calendarView", params=params)
    events = response.get("value", [])
    logger.info("Retrieved %d events", len(events))
    return events


def parse_graph_datetime(value: dict[str, Any]) -> datetime:
    """Parse a Graph dateTimeTimeZone object.

    Graph returns UTC by default, with up to seven fractional digits and no
    offset (e.g. "2025-02-17T17:00:00.0000000").
    """
    raw = value.get("dateTime", "").split(".")[0]
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        tz_name = value.get("timeZone") or "UTC"
        parsed = parsed.replace(tzinfo=timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name))
    return parsed


def format_events(events: list[dict[str, Any]], tz_name: str) -> str:
    """Render events as text, grouped under a heading per day."""
    if not events:
        return "No events found."

    tz = ZoneInfo(tz_name)
    lines: list[str] = []
    current_day = ""

    for event in events:
        start = parse_graph_datetime(event.get("start", {})).astimezone(tz)
        day = f"{start:%a, %b} {start.day}"

        if day != current_day:
            if current_day:
                lines.append("")
            lines.append(day)
            lines.append("-" * 40)
            current_day = day

        time_str = "All day" if event.get("isAllDay") else start.strftime("%H:%M")
        lines.append(f"  {time_str:>7}  {event.get('subject') or '(No title)'}")

        location = (event.get("location") or {}).get("displayName")
        if location:
            lines.append(f"           @ {location}")

    return "\n".join(lines)
