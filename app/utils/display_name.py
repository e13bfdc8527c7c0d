from typing import Optional


UNKNOWN_USER = "Unknown user"
UNTITLED_GROUP = "Untitled group"


def display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    """Build a profile's display name: "First Last", then first, then last."""

    first = (first_name or "").strip()
    last = (last_name or "").strip()

    if first and last:
        return f"{first} {last}"
    if first:
        return first
    if last:
        return last
    return UNKNOWN_USER


def group_display_name(name: Optional[str]) -> str:
    if name and name.strip():
        return name
    return UNTITLED_GROUP
