"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (KeyError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")


def to_local(dt: datetime, tz_name: str) -> datetime:
    """
    Convert UTC datetime to local timezone for display.

    ONLY use this at display boundaries - when rendering for humans.
    All internal operations should remain in UTC.

    Args:
        dt: UTC datetime
        tz_name: IANA timezone name (e.g., "Africa/Accra")

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    return dt.astimezone(_zone(tz_name))


def combine_local(day: date, clock: str, tz_name: str) -> datetime:
    """
    Build a UTC datetime from a local calendar date and "HH:MM" wall-clock time.

    Bookings store the date and time the way the client typed them, in the
    marketplace timezone. Everything downstream compares in UTC.

    Raises:
        ValueError: If the time string is malformed or timezone is invalid
    """
    try:
        wall_clock = time.fromisoformat(clock)
    except ValueError:
        raise ValueError(f"Invalid time of day: {clock!r} (expected HH:MM)")

    local = datetime.combine(day, wall_clock, tzinfo=_zone(tz_name))
    return to_utc(local)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)
