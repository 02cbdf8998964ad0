#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Event planning: expands a manual request or a batch of CSV rows into
LogicalEvents ready for reconciliation.

Nothing here talks to Google. Every emitted date has already been moved
off the weekend.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from date_utils import days_before, format_date, add_days, parse_date, shift_weekend_to_friday
from errors import InvalidRowError, ValidationError
from event_keys import SOURCE_CSV, SOURCE_MANUAL

log = logging.getLogger("checkinbridge.planner")

KIND_CHECKIN = "checkin"
KIND_REMINDER = "reminder"
KIND_RETENTION = "retention"

ROUTE_DEFAULT = "default"
ROUTE_REMINDER = "reminder"
ROUTE_RETENTION = "retention"

ROLE_REMINDER = "reminder"
ROLE_IGNORE = "ignore"
ROLE_RETENTION_SEED = "retention_seed"
COLUMN_ROLES = (ROLE_REMINDER, ROLE_IGNORE, ROLE_RETENTION_SEED)

ACTIVE_STATUS = "Active"

# (label, days after base date)
FOLLOW_UP_OFFSETS: Tuple[Tuple[str, int], ...] = (
    ("1 day", 1),
    ("10 day", 10),
    ("45 day", 45),
)

RETENTION_OFFSET_DAYS = 45


# ============================================================================
# Data Models
# ============================================================================

@dataclass
class LogicalEvent:
    participant_or_title: str
    title: str
    date: date
    event_kind: str
    calendar_route: str
    source_tag: str
    demo_flag: bool = False
    original_date: Optional[date] = None
    was_shifted: bool = False
    attendee_email: Optional[str] = None
    invite_attendee: bool = False
    base_date: Optional[date] = None
    label: Optional[str] = None
    participant_id: Optional[str] = None
    column_code: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        if self.original_date is None:
            self.original_date = self.date

    @property
    def attendee(self) -> Optional[str]:
        """Email to invite, only when the attendee policy is on."""
        if self.invite_attendee and self.attendee_email:
            return self.attendee_email
        return None

    @property
    def all_day(self) -> bool:
        return self.event_kind == KIND_RETENTION

    def display_date(self) -> str:
        return format_date(self.date)


@dataclass
class ManualRequest:
    base_date: str
    title: str
    attendee_email: str
    time: Optional[str] = None


@dataclass(frozen=True)
class ColumnRule:
    code: str
    title: str
    role: str

    def __post_init__(self):
        if self.role not in COLUMN_ROLES:
            raise ValueError(f"Unknown column role {self.role!r} for {self.code}")


@dataclass
class CsvRow:
    participant_id: str
    column_code: str
    raw_date: str
    status: str = ACTIVE_STATUS


@dataclass
class BatchPlan:
    events: List[LogicalEvent] = field(default_factory=list)
    invalid_rows: List[InvalidRowError] = field(default_factory=list)
    ignored_rows: int = 0
    inactive_rows: int = 0


def _burst_rules(burst: int) -> List[ColumnRule]:
    prefix = f"B{burst}START"
    rules = [
        ColumnRule(f"{prefix}MIN10", f"BURST {burst} Pre-BURST Checklist", ROLE_REMINDER),
        ColumnRule(f"{prefix}MIN1", f"BURST {burst} 1-Day Prior Reminder", ROLE_REMINDER),
    ]
    if burst == 1:
        # BURST 1 start date is the enrolment date; nothing derives from it
        rules.append(ColumnRule(f"{prefix}DATE", f"BURST {burst} Start Date", ROLE_IGNORE))
    else:
        rules.append(ColumnRule(f"{prefix}DATE", f"BURST {burst} Retention Text", ROLE_RETENTION_SEED))
    return rules


DEFAULT_COLUMN_RULES: Dict[str, ColumnRule] = {
    rule.code: rule for burst in (1, 2, 3, 4) for rule in _burst_rules(burst)
}


def load_column_rules(raw: Optional[Iterable[Mapping[str, Any]]]) -> Dict[str, ColumnRule]:
    """Build a rule table from config entries, or return the default table."""
    if not raw:
        return dict(DEFAULT_COLUMN_RULES)
    rules: Dict[str, ColumnRule] = {}
    for entry in raw:
        try:
            rule = ColumnRule(str(entry["code"]), str(entry["title"]), str(entry["role"]))
        except KeyError as e:
            raise ValueError(f"Column rule missing field {e}: {entry}") from e
        rules[rule.code] = rule
    return rules


# ============================================================================
# Manual mode
# ============================================================================

def plan_manual(
    base_date: date,
    title: str,
    attendee_email: str,
    demo_flag: bool = False,
    offsets: Sequence[Tuple[str, int]] = FOLLOW_UP_OFFSETS,
    invite_attendee: bool = True,
) -> List[LogicalEvent]:
    """One check-in per follow-up offset, all on the default calendar."""
    events = []
    for label, days in offsets:
        shift = shift_weekend_to_friday(add_days(base_date, days))
        events.append(
            LogicalEvent(
                participant_or_title=title,
                title=f"{title} - {label} check-in",
                date=shift.adjusted_date,
                original_date=shift.original_date,
                was_shifted=shift.was_shifted,
                event_kind=KIND_CHECKIN,
                calendar_route=ROUTE_DEFAULT,
                source_tag=SOURCE_MANUAL,
                demo_flag=demo_flag,
                attendee_email=attendee_email,
                invite_attendee=invite_attendee,
                base_date=base_date,
                label=label,
                description=(
                    f"Automated check-in event created for {title}.\n"
                    f"Base date: {format_date(base_date)}\n"
                    f"Follow-up type: {label}"
                ),
            )
        )
    return events


# ============================================================================
# CSV batch mode
# ============================================================================

def _csv_event(row: CsvRow, title: str, event_date: date, kind: str, route: str,
               demo_flag: bool, attendee_email: Optional[str], description: str) -> LogicalEvent:
    shift = shift_weekend_to_friday(event_date)
    return LogicalEvent(
        participant_or_title=row.participant_id,
        title=f"{title} - Participant {row.participant_id}",
        date=shift.adjusted_date,
        original_date=shift.original_date,
        was_shifted=shift.was_shifted,
        event_kind=kind,
        calendar_route=route,
        source_tag=SOURCE_CSV,
        demo_flag=demo_flag,
        attendee_email=attendee_email,
        invite_attendee=bool(attendee_email),
        participant_id=row.participant_id,
        column_code=row.column_code,
        label=title,
        description=description,
    )


def plan_batch(
    rows: Iterable[CsvRow],
    rules: Optional[Mapping[str, ColumnRule]] = None,
    demo_flag: bool = False,
    attendee_email: Optional[str] = None,
    retention_offset_days: int = RETENTION_OFFSET_DAYS,
) -> BatchPlan:
    """
    Expand CSV rows. Reminder columns emit directly; retention seeds emit
    one all-day event retention_offset_days earlier. Reminders come first,
    then retention events, matching the order of the CSV report.
    """
    rules = DEFAULT_COLUMN_RULES if rules is None else rules
    plan = BatchPlan()
    retention: List[LogicalEvent] = []

    for row in rows:
        if row.status != ACTIVE_STATUS:
            plan.inactive_rows += 1
            continue

        rule = rules.get(row.column_code)
        if rule is None or rule.role == ROLE_IGNORE:
            plan.ignored_rows += 1
            continue

        try:
            row_date = parse_date(row.raw_date)
        except ValidationError as e:
            err = InvalidRowError(row.participant_id, row.column_code, row.raw_date, str(e))
            log.warning(f"Skipping row: {err}")
            plan.invalid_rows.append(err)
            continue

        if rule.role == ROLE_REMINDER:
            plan.events.append(
                _csv_event(
                    row, rule.title, row_date, KIND_REMINDER, ROUTE_REMINDER, demo_flag, attendee_email,
                    f"Participant ID: {row.participant_id}\nColumn: {row.column_code}",
                )
            )
        else:
            retention.append(
                _csv_event(
                    row, rule.title, days_before(row_date, retention_offset_days), KIND_RETENTION,
                    ROUTE_RETENTION, demo_flag, attendee_email,
                    f"Participant ID: {row.participant_id}\nColumn: {row.column_code}\n"
                    f"Base date: {format_date(row_date)}",
                )
            )

    plan.events.extend(retention)
    log.info(
        f"Planned {len(plan.events)} events ({len(retention)} retention), "
        f"{len(plan.invalid_rows)} invalid rows, {plan.ignored_rows} ignored"
    )
    return plan


def summarize(events: Sequence[LogicalEvent]) -> Dict[str, Any]:
    """Counts for a CSV preview."""
    by_type = Counter(ev.label or ev.title for ev in events)
    return {
        "totalEvents": len(events),
        "totalParticipants": len({ev.participant_or_title for ev in events}),
        "eventsByType": dict(by_type),
        "weekendShifts": sum(1 for ev in events if ev.was_shifted),
    }
