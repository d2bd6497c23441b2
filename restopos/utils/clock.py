from datetime import datetime, date, time as dt_time
import pytz


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def restaurant_tz(timezone_name: str):
    """The restaurant's timezone, UTC when the name is unknown."""
    try:
        return pytz.timezone(timezone_name or "UTC")
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def restaurant_now(timezone_name: str) -> datetime:
    return datetime.now(restaurant_tz(timezone_name))


def start_of_day_utc(day: date, timezone_name: str) -> datetime:
    """UTC instant at which ``day`` begins in the restaurant's timezone."""
    tz = restaurant_tz(timezone_name)
    return tz.localize(datetime.combine(day, dt_time.min)).astimezone(pytz.UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse a Postgres ISO timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    return parsed
