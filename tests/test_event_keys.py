from datetime import date

import pytest

from errors import ValidationError
from event_keys import build_csv_key, build_manual_key, event_key, normalize_key_date
from event_planner import CsvRow, plan_batch, plan_manual


def test_manual_key_format():
    key = build_manual_key("11/08/2025", "P100", "10 day", "P100@Example.com")
    assert key == "11-08-2025_P100_10day_p100@example.com"


def test_manual_key_sanitizes_email():
    key = build_manual_key("11/08/2025", "P100", "1 day", "first+last@mail-host.org")
    assert key.endswith("_first_last@mail_host.org")


def test_manual_key_is_pure():
    args = ("11/08/2025", "P100", "45 day", "p100@example.com")
    assert build_manual_key(*args) == build_manual_key(*args)


def test_different_attendee_different_key():
    a = build_manual_key("11/08/2025", "P100", "1 day", "a@example.com")
    b = build_manual_key("11/08/2025", "P100", "1 day", "b@example.com")
    assert a != b


def test_date_padding_does_not_change_key():
    assert build_csv_key("701", "1/5/2026", "B2STARTMIN1") == build_csv_key("701", "01/05/2026", "B2STARTMIN1")
    assert normalize_key_date(date(2026, 1, 5)) == "01-05-2026"


def test_csv_key_format():
    assert build_csv_key("701", "11/2/2025", "B2STARTMIN10") == "701_11-02-2025_B2STARTMIN10"


@pytest.mark.parametrize("email", ["", "   ", None])
def test_manual_key_requires_email(email):
    with pytest.raises(ValidationError):
        build_manual_key("11/08/2025", "P100", "1 day", email)


def test_event_key_for_manual_events_uses_base_date():
    events = plan_manual(date(2025, 11, 8), "P100", "p100@example.com")
    assert [event_key(ev) for ev in events] == [
        "11-08-2025_P100_1day_p100@example.com",
        "11-08-2025_P100_10day_p100@example.com",
        "11-08-2025_P100_45day_p100@example.com",
    ]


def test_event_key_for_csv_uses_unshifted_date():
    plan = plan_batch([CsvRow("701", "B2STARTMIN10", "11/08/2025")])
    ev = plan.events[0]
    assert ev.was_shifted
    assert event_key(ev) == "701_11-08-2025_B2STARTMIN10"
