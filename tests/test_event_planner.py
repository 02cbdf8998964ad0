from datetime import date

import pytest

from date_utils import format_date
from event_keys import SOURCE_CSV, SOURCE_MANUAL
from event_planner import (
    ColumnRule, CsvRow, DEFAULT_COLUMN_RULES, KIND_CHECKIN, KIND_REMINDER, KIND_RETENTION,
    ROLE_REMINDER, ROLE_RETENTION_SEED, ROUTE_DEFAULT, ROUTE_REMINDER, ROUTE_RETENTION,
    load_column_rules, plan_batch, plan_manual, summarize,
)


# ---------------------------------------------------------------------------
# Manual mode
# ---------------------------------------------------------------------------

def test_manual_plan_saturday_base_date():
    events = plan_manual(date(2025, 11, 8), "P100", "p100@example.com")

    assert [format_date(ev.date) for ev in events] == ["11/07/2025", "11/18/2025", "12/23/2025"]
    assert [ev.was_shifted for ev in events] == [True, False, False]
    assert format_date(events[0].original_date) == "11/09/2025"
    assert [ev.title for ev in events] == [
        "P100 - 1 day check-in", "P100 - 10 day check-in", "P100 - 45 day check-in",
    ]
    for ev in events:
        assert ev.event_kind == KIND_CHECKIN
        assert ev.calendar_route == ROUTE_DEFAULT
        assert ev.source_tag == SOURCE_MANUAL
        assert ev.attendee == "p100@example.com"
        assert not ev.all_day


def test_manual_plan_attendee_policy_off():
    events = plan_manual(date(2025, 11, 10), "P1", "p1@example.com", invite_attendee=False)
    assert all(ev.attendee is None for ev in events)
    assert all(ev.attendee_email == "p1@example.com" for ev in events)


def test_manual_plan_threads_demo_flag():
    events = plan_manual(date(2025, 11, 10), "P1", "p1@example.com", demo_flag=True)
    assert all(ev.demo_flag for ev in events)


def test_manual_plan_custom_offsets():
    events = plan_manual(date(2025, 11, 10), "P1", "p1@example.com", offsets=[("7 day", 7)])
    assert len(events) == 1
    assert events[0].date == date(2025, 11, 17)


# ---------------------------------------------------------------------------
# CSV batch mode
# ---------------------------------------------------------------------------

def test_retention_seed_derives_one_event_45_days_earlier():
    plan = plan_batch([CsvRow("701", "B2STARTDATE", "03/01/2026")])

    assert len(plan.events) == 1
    ev = plan.events[0]
    assert format_date(ev.date) == "01/15/2026"
    assert ev.event_kind == KIND_RETENTION
    assert ev.calendar_route == ROUTE_RETENTION
    assert ev.column_code == "B2STARTDATE"
    assert ev.title == "BURST 2 Retention Text - Participant 701"
    assert ev.all_day


def test_reminder_rows_pass_through_with_weekend_shift():
    plan = plan_batch([CsvRow("701", "B2STARTMIN10", "11/08/2025"), CsvRow("701", "B2STARTMIN1", "11/17/2025")])

    first, second = plan.events
    assert first.event_kind == KIND_REMINDER
    assert first.calendar_route == ROUTE_REMINDER
    assert first.source_tag == SOURCE_CSV
    assert format_date(first.date) == "11/07/2025"
    assert first.was_shifted
    assert first.title == "BURST 2 Pre-BURST Checklist - Participant 701"
    assert format_date(second.date) == "11/17/2025"
    assert not second.was_shifted


def test_inactive_and_ignored_rows_are_not_planned():
    rows = [
        CsvRow("701", "B2STARTMIN10", "11/03/2025", status="Withdrawn"),
        CsvRow("702", "B1STARTDATE", "11/03/2025"),
        CsvRow("702", "NOTES", "11/03/2025"),
        CsvRow("702", "B1STARTMIN1", "11/03/2025"),
    ]
    plan = plan_batch(rows)

    assert [ev.column_code for ev in plan.events] == ["B1STARTMIN1"]
    assert plan.inactive_rows == 1
    assert plan.ignored_rows == 2


def test_invalid_row_is_reported_and_batch_continues():
    rows = [
        CsvRow("701", "B2STARTMIN10", "13/45/2025"),
        CsvRow("702", "B2STARTMIN10", "11/03/2025"),
    ]
    plan = plan_batch(rows)

    assert len(plan.events) == 1
    assert plan.events[0].participant_id == "702"
    assert len(plan.invalid_rows) == 1
    err = plan.invalid_rows[0]
    assert err.participant_id == "701"
    assert err.to_dict()["column"] == "B2STARTMIN10"


def test_retention_events_follow_reminders():
    rows = [
        CsvRow("701", "B3STARTDATE", "06/01/2026"),
        CsvRow("701", "B3STARTMIN10", "05/22/2026"),
    ]
    kinds = [ev.event_kind for ev in plan_batch(rows).events]
    assert kinds == [KIND_REMINDER, KIND_RETENTION]


def test_attendee_email_for_batch():
    plan = plan_batch([CsvRow("701", "B2STARTMIN1", "11/03/2025")], attendee_email="lab@example.com")
    assert plan.events[0].attendee == "lab@example.com"
    assert plan_batch([CsvRow("701", "B2STARTMIN1", "11/03/2025")]).events[0].attendee is None


def test_injected_column_rules():
    rules = {
        "VISIT1": ColumnRule("VISIT1", "Visit 1 Reminder", ROLE_REMINDER),
        "FOLLOWUP": ColumnRule("FOLLOWUP", "Follow-up Retention", ROLE_RETENTION_SEED),
    }
    rows = [CsvRow("9", "VISIT1", "11/04/2025"), CsvRow("9", "FOLLOWUP", "11/04/2025"),
            CsvRow("9", "B2STARTMIN10", "11/04/2025")]
    plan = plan_batch(rows, rules=rules, retention_offset_days=7)

    assert [ev.title for ev in plan.events] == [
        "Visit 1 Reminder - Participant 9", "Follow-up Retention - Participant 9",
    ]
    assert plan.events[1].date == date(2025, 10, 28)
    assert plan.ignored_rows == 1


def test_default_rules_cover_four_bursts():
    assert len(DEFAULT_COLUMN_RULES) == 12
    assert DEFAULT_COLUMN_RULES["B1STARTDATE"].role == "ignore"
    assert DEFAULT_COLUMN_RULES["B4STARTDATE"].role == ROLE_RETENTION_SEED
    assert DEFAULT_COLUMN_RULES["B3STARTMIN1"].title == "BURST 3 1-Day Prior Reminder"


def test_load_column_rules_from_config_entries():
    rules = load_column_rules([{"code": "X", "title": "X title", "role": "reminder"}])
    assert list(rules) == ["X"]
    with pytest.raises(ValueError):
        load_column_rules([{"code": "X", "title": "X title", "role": "emit"}])
    with pytest.raises(ValueError):
        load_column_rules([{"code": "X"}])


def test_summarize():
    rows = [CsvRow("701", "B2STARTMIN10", "11/08/2025"), CsvRow("702", "B2STARTMIN10", "11/04/2025"),
            CsvRow("702", "B2STARTDATE", "03/01/2026")]
    summary = summarize(plan_batch(rows).events)
    assert summary["totalEvents"] == 3
    assert summary["totalParticipants"] == 2
    assert summary["eventsByType"] == {"BURST 2 Pre-BURST Checklist": 2, "BURST 2 Retention Text": 1}
    assert summary["weekendShifts"] == 1
