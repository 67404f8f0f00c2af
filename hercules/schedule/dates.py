"""Calendar-date helpers for schedule resolution.

All schedule arithmetic happens on local calendar dates. Time of day is
discarded before differencing so DST shifts and sub-day timestamps never
move a workout to a neighbouring day.
"""

from datetime import date, datetime, timedelta

from hercules.schedule.types import WEEKDAY_KEYS, WeekdayKey

DATE_KEY_FORMAT = "%Y-%m-%d"


def to_local_date(value: date | datetime) -> date:
    """Normalize a date or datetime to a local calendar date.

    Aware datetimes are converted to the local timezone first; naive
    datetimes are taken to already be local.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def date_key(value: date | datetime) -> str:
    """Format a date as the YYYY-MM-DD key used by overrides."""
    return to_local_date(value).strftime(DATE_KEY_FORMAT)


def parse_date_key(value: str) -> date:
    """Parse a YYYY-MM-DD override key.

    Raises:
        ValueError: If the string is not a valid date key
    """
    return datetime.strptime(value, DATE_KEY_FORMAT).date()


def weekday_key(value: date | datetime) -> WeekdayKey:
    return WEEKDAY_KEYS[to_local_date(value).weekday()]


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole local days from start to end (negative when end is before start)."""
    return (to_local_date(end) - to_local_date(start)).days


def current_week(today: date | datetime) -> list[date]:
    """Monday..Sunday of the calendar week containing today."""
    day = to_local_date(today)
    monday = day - timedelta(days=day.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def local_now() -> datetime:
    """Timezone-aware current time in the local zone."""
    return datetime.now().astimezone()
