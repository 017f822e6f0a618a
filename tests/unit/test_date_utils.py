"""Unit tests for calendar bounds"""

from datetime import date, datetime, timezone
from coop_approvals.utils.date_utils import start_of_day, start_of_next_day, start_of_next_year, start_of_year


def test_day_bounds_cover_the_whole_day():
    day = date(2026, 10, 18)

    assert start_of_day(day) == datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert start_of_next_day(day) == datetime(2026, 10, 19, tzinfo=timezone.utc)
    assert start_of_next_day(date(2026, 12, 31)) == datetime(2027, 1, 1, tzinfo=timezone.utc)


def test_year_bounds():
    moment = datetime(2026, 10, 18, 15, 30, tzinfo=timezone.utc)

    assert start_of_year(moment) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert start_of_next_year(moment) == datetime(2027, 1, 1, tzinfo=timezone.utc)
