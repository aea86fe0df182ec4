"""Date helpers shared by the recommendation engine, advisor, and daemon."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Final

Clock = Callable[[], datetime]

WEEKDAY_NAMES: Final[tuple[str, ...]] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def local_now() -> datetime:
    """Return the current wall-clock time as an offset-aware local datetime."""
    return datetime.now().astimezone()


def ensure_aware(value: datetime) -> datetime:
    """Attach the local offset to naive datetimes; aware values pass through."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def to_utc_iso(value: datetime) -> str:
    """Normalise a datetime to a sortable UTC ISO-8601 string."""
    return ensure_aware(value).astimezone(timezone.utc).isoformat()


def day_name(value: datetime) -> str:
    return WEEKDAY_NAMES[value.weekday()]


def format_clock_time(value: datetime) -> str:
    """Format as ``10:00 AM``."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"
