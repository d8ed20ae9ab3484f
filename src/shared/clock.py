"""Timezone helpers shared by services that stamp or compare datetimes."""

from datetime import date, datetime, time, timezone, tzinfo


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` in UTC; naive values (as read back from SQLite) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def combine_local(day: date, hhmm: str, tz: tzinfo) -> datetime:
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes), tz)


def isoformat_utc(value: datetime) -> str:
    return ensure_utc(value).isoformat()
