"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def start_of_year(moment: datetime) -> datetime:
    """First instant of the calendar year containing moment"""
    return moment.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_year(moment: datetime) -> datetime:
    """First instant of the calendar year after moment"""
    return start_of_year(moment).replace(year=moment.year + 1)


def start_of_day(day: date) -> datetime:
    """UTC midnight opening `day`"""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def start_of_next_day(day: date) -> datetime:
    """UTC midnight closing `day`; use as an exclusive upper bound"""
    return start_of_day(day + timedelta(days=1))
