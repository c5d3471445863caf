"""Day and week keys used to address challenge and leaderboard records."""
import math
from datetime import date
from typing import Optional


def day_key_for(day: Optional[date] = None) -> str:
    """Day key for a calendar date (defaults to today), e.g. "2025-09-16"."""
    day = day or date.today()
    return day.isoformat()


def week_number(day: date) -> int:
    """
    Week of the year for a date.

    Weeks start on Sunday and week 1 is the week containing January 1st:
    ceil((days since Jan 1 + weekday of Jan 1 + 1) / 7), with Sunday = 0.
    Stable for a given calendar date; not ISO-8601.
    """
    first_day = date(day.year, 1, 1)
    past_days = (day - first_day).days
    first_weekday = (first_day.weekday() + 1) % 7  # Sunday = 0
    return math.ceil((past_days + first_weekday + 1) / 7)


def week_key_for(day: Optional[date] = None) -> str:
    """Week key for a date (defaults to today), e.g. "2025-W38"."""
    day = day or date.today()
    return f"{day.year}-W{week_number(day):02d}"
