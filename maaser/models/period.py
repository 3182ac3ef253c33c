"""
Period identifiers.

A period is a calendar month written "YYYY-MM". The zero padding makes
string comparison equal to chronological comparison, which carry-forward
and snapshot ordering rely on.
"""

import re
from datetime import date
from typing import Annotated, Optional

from pydantic import AfterValidator

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_period(value: str) -> str:
    """Return the period unchanged, or raise ValueError if it isn't YYYY-MM."""
    if not isinstance(value, str) or not PERIOD_PATTERN.match(value):
        raise ValueError(f"Period must look like YYYY-MM, got {value!r}")
    return value


Period = Annotated[str, AfterValidator(validate_period)]


def period_of(day: date) -> str:
    """The period a date falls in."""
    return f"{day.year:04d}-{day.month:02d}"


def current_period(today: Optional[date] = None) -> str:
    """The period for today (or the given date)."""
    return period_of(today or date.today())


def months_between(start: str, end: str) -> int:
    """Number of months from start to end (negative if end is earlier)."""
    start_year, start_month = (int(part) for part in validate_period(start).split("-"))
    end_year, end_month = (int(part) for part in validate_period(end).split("-"))
    return (end_year - start_year) * 12 + (end_month - start_month)
