"""
Error types for CheckinBridge.

Validation errors are raised before anything touches the calendar. Remote
failures are caught per event by the engine; only AuthRequiredError is
allowed to abort a batch.
"""
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError


class CheckinError(Exception):
    """Base class for CheckinBridge errors."""


class ValidationError(CheckinError, ValueError):
    """Malformed date, time or email input."""


class InvalidRowError(ValidationError):
    """A CSV row whose date cannot be parsed."""

    def __init__(self, participant_id, column_code, raw_date, reason):
        self.participant_id = participant_id
        self.column_code = column_code
        self.raw_date = raw_date
        self.reason = reason
        super().__init__(
            f"Participant {participant_id} column {column_code}: "
            f"invalid date {raw_date!r} ({reason})"
        )

    def to_dict(self):
        return {
            "participantId": self.participant_id,
            "column": self.column_code,
            "date": self.raw_date,
            "error": self.reason,
        }


class EventLookupError(CheckinError):
    """Remote query for an existing event failed."""


class RemoteWriteError(CheckinError):
    """Remote create or delete failed."""


class AuthRequiredError(CheckinError):
    """No usable Google credential is available."""


def http_status(exc) -> int:
    resp = getattr(exc, "resp", None)
    try:
        return int(getattr(resp, "status", 0) or 0)
    except (TypeError, ValueError):
        return 0


def is_auth_error(exc) -> bool:
    """True when exc means the credential itself is unusable."""
    if isinstance(exc, (AuthRequiredError, RefreshError)):
        return True
    return isinstance(exc, HttpError) and http_status(exc) == 401


def describe(exc) -> str:
    """Short human readable message for reports."""
    if isinstance(exc, HttpError):
        reason = getattr(exc, "reason", None) or str(exc)
        return f"HTTP {http_status(exc)}: {reason}"
    return str(exc) or exc.__class__.__name__
