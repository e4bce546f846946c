"""Display helpers for friend rows: initials and "last active" labels."""

from datetime import datetime, timezone

# Largest unit first, as a relative-date formatter picks it
_UNITS = [
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("week", 7 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
]


def initials_for(displayed_name: str, username: str) -> str:
    """Two initials from the first two words of the name, else one letter, else "?"."""
    parts = displayed_name.split()
    if len(parts) >= 2:
        return (parts[0][0] + parts[1][0]).upper()
    if displayed_name:
        return displayed_name[0].upper()
    if username:
        return username[0].upper()
    return "?"


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def relative_phrase(then: datetime, now: datetime) -> str:
    delta = (now - then).total_seconds()
    future = delta < 0
    seconds = abs(int(delta))
    unit, size = next((u, s) for u, s in _UNITS if seconds >= s or u == "second")
    count = seconds // size
    label = unit if count == 1 else f"{unit}s"
    return f"in {count} {label}" if future else f"{count} {label} ago"


def format_last_active(
    last_online: str | datetime | None, is_online: bool, now: datetime | None = None
) -> str:
    if is_online:
        return "Just now"
    then = parse_timestamp(last_online)
    if then is None:
        return "Unknown"
    return relative_phrase(then, now or datetime.now(timezone.utc))
