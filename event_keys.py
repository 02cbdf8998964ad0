"""
Deterministic idempotency keys.

The key is stored in extendedProperties.private.eventKey on every event we
create, and looked up again before each insert. Changing the format here
orphans every event already on the calendar.
"""
import re
from datetime import date
from typing import Union

from date_utils import format_date, parse_date
from errors import ValidationError

SOURCE_MANUAL = "manual"
SOURCE_CSV = "csv-import"

_EMAIL_UNSAFE = re.compile(r"[^a-z0-9@.]")
_WHITESPACE = re.compile(r"\s+")


def normalize_key_date(value: Union[date, str]) -> str:
    """MM-DD-YYYY, zero padded, so 1/5/2026 and 01/05/2026 collide."""
    d = value if isinstance(value, date) else parse_date(value)
    return format_date(d).replace("/", "-")


def _require(**parts):
    for name, value in parts.items():
        if value is None or not str(value).strip():
            raise ValidationError(f"Cannot build event key: {name} is empty")


def build_manual_key(base_date, title: str, kind_label: str, attendee_email: str) -> str:
    # e.g. "11-10-2025_P100_10day_p100@example.com"
    _require(title=title, kind_label=kind_label, attendee_email=attendee_email)
    date_part = normalize_key_date(base_date)
    type_part = _WHITESPACE.sub("", kind_label)
    email_part = _EMAIL_UNSAFE.sub("_", attendee_email.strip().lower())
    return f"{date_part}_{title.strip()}_{type_part}_{email_part}"


def build_csv_key(participant_id: str, event_date, column_code: str) -> str:
    # e.g. "701_11-02-2025_B2STARTMIN10"
    _require(participant_id=participant_id, column_code=column_code)
    return f"{str(participant_id).strip()}_{normalize_key_date(event_date)}_{column_code}"


def event_key(event) -> str:
    """Key for a planned LogicalEvent."""
    if event.source_tag == SOURCE_MANUAL:
        return build_manual_key(event.base_date, event.participant_or_title, event.label, event.attendee_email)
    if event.source_tag == SOURCE_CSV:
        return build_csv_key(event.participant_id, event.original_date, event.column_code)
    raise ValidationError(f"Unknown source tag: {event.source_tag!r}")
