#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Date helpers for check-in planning.

All arithmetic is on plain calendar dates (no timezone at this layer).
The textual form used throughout is MM/DD/YYYY.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Union

from errors import ValidationError

DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SATURDAY = 5
SUNDAY = 6

DateLike = Union[date, str]


@dataclass(frozen=True)
class WeekendShift:
    adjusted_date: date
    was_shifted: bool
    original_date: date


def parse_date(text: str) -> date:
    """Parse MM/DD/YYYY (1-2 digit month/day). Raises ValidationError."""
    if not isinstance(text, str):
        raise ValidationError(f"Expected MM/DD/YYYY string, got {type(text).__name__}")
    match = DATE_RE.match(text.strip())
    if not match:
        raise ValidationError(f"Invalid date format {text!r}; use MM/DD/YYYY")
    month, day, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ValidationError(f"Invalid date {text!r}: {e}") from e


def format_date(d: date) -> str:
    return f"{d.month:02d}/{d.day:02d}/{d.year:04d}"


def _as_date(value: DateLike) -> date:
    if isinstance(value, date):
        return value
    return parse_date(value)


def is_weekend(value: DateLike) -> bool:
    return _as_date(value).weekday() in (SATURDAY, SUNDAY)


def shift_weekend_to_friday(value: DateLike) -> WeekendShift:
    """Saturday moves back one day, Sunday two. Weekdays pass through."""
    d = _as_date(value)
    weekday = d.weekday()
    if weekday == SATURDAY:
        return WeekendShift(d - timedelta(days=1), True, d)
    if weekday == SUNDAY:
        return WeekendShift(d - timedelta(days=2), True, d)
    return WeekendShift(d, False, d)


def add_days(value: DateLike, days: int) -> DateLike:
    """Add days, returning the same type that was passed in."""
    result = _as_date(value) + timedelta(days=days)
    if isinstance(value, str):
        return format_date(result)
    return result


def days_before(value: DateLike, days: int) -> DateLike:
    return add_days(value, -days)


# ============================================================================
# Caller-side validation
# ============================================================================

def validate_date(text: str, min_year: int = 2000, max_year: int = 2100) -> date:
    if not text or not text.strip():
        raise ValidationError("Date is required")
    match = DATE_RE.match(text.strip())
    if not match:
        raise ValidationError(f"Invalid date format {text!r}; use MM/DD/YYYY (e.g., 11/10/2025)")
    month, day, year = (int(part) for part in match.groups())
    if not 1 <= month <= 12:
        raise ValidationError(f"Month out of range in {text!r}")
    if not 1 <= day <= 31:
        raise ValidationError(f"Day out of range in {text!r}")
    if not min_year <= year <= max_year:
        raise ValidationError(f"Year {year} outside {min_year}-{max_year}")
    return parse_date(text)


def validate_time(text: str) -> str:
    """Validate HH:MM (00:00-23:59) and return it zero padded."""
    match = TIME_RE.match((text or "").strip())
    if not match:
        raise ValidationError(f"Invalid time format {text!r}; use HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Time out of range: {text!r}")
    return f"{hour:02d}:{minute:02d}"


def validate_email(text: Optional[str]) -> str:
    email = (text or "").strip()
    if not email:
        raise ValidationError("Attendee email is required")
    if not EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email address format: {email!r}")
    return email
