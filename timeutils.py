"""Clock and calendar helpers.

All datetimes handled by the service are naive and expressed in the configured
application timezone; that is also how they are written to the store.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import settings
from errors import ValidationError

APP_ZONEINFO = ZoneInfo(settings.app_timezone or "Asia/Tokyo")

DateLike = Union[date, datetime]


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


default_time_provider = TimeProvider()


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_date(value), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(_as_date(value), time.max)


def week_start(value: DateLike) -> datetime:
    """Monday 00:00 of the week containing ``value``."""
    day = _as_date(value)
    return start_of_day(day - timedelta(days=day.weekday()))


def week_key(value: DateLike) -> str:
    return week_start(value).strftime("%Y-%m-%d")


def month_start(value: DateLike) -> datetime:
    day = _as_date(value)
    return datetime(day.year, day.month, 1)


def date_key(value: DateLike) -> str:
    return _as_date(value).isoformat()


def parse_date(value: Optional[Union[str, DateLike]], default: Optional[datetime] = None) -> Optional[datetime]:
    """Accept a datetime, a date or an ISO-8601 string and return a naive datetime."""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(APP_ZONEINFO).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return start_of_day(value)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc
    if parsed.tzinfo is not None:
        return parsed.astimezone(APP_ZONEINFO).replace(tzinfo=None)
    return parsed
