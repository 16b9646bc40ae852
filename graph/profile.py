"""Signed-in user profile lookup."""

from typing import Any

from graph.client import GraphClient


def fetch_profile(client: GraphClient) -> dict[str, Any]:
    """Fetch the signed-in user's profile from /me."""
    return client.get("/me")


def format_profile(profile: dict[str, Any]) -> str:
    lines = [
        f"Name:  {profile.get('displayName') or 'N/A'}",
        f"Email: {profile.get('mail') or profile.get('userPrincipalName') or 'N/A'}",
        f"Title: {profile.get('jobTitle') or 'N/A'}",
    ]
    return "\n".join(lines)
