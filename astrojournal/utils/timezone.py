# astrojournal/utils/timezone.py
from datetime import datetime
from zoneinfo import ZoneInfo


def to_utc(dt: datetime, assume_tz: str = "UTC") -> datetime:
    """
    Aware datetimes are converted to UTC; naive ones are first read as
    wall-clock time in `assume_tz`.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(assume_tz))
    return dt.astimezone(ZoneInfo("UTC"))


def wall_clock(dt: datetime) -> datetime:
    """
    Local wall-clock view of `dt` as a naive datetime. Aware datetimes keep
    the clock reading of their own zone.
    """
    return dt.replace(tzinfo=None)


def now_in(tz: str) -> datetime:
    return datetime.now(ZoneInfo(tz))


def from_utc_naive(dt: datetime, tz: str) -> datetime:
    """Read a stored naive-UTC datetime back into zone `tz`."""
    return dt.replace(tzinfo=ZoneInfo("UTC")).astimezone(ZoneInfo(tz))
