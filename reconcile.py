#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Reconciliation engine: lookup-then-create for planned events.

For each LogicalEvent:
- compute its idempotency key
- look for an event on the routed calendar carrying that key
- skip if found, otherwise build the Google body and insert it

Lookup and insert are not atomic. KeyLocks closes the window for callers
inside one process; two processes reconciling the same key at the same
moment can still both create.
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import httplib2
from dateutil.tz import gettz
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from date_utils import format_date
from errors import AuthRequiredError, EventLookupError, RemoteWriteError, describe, is_auth_error
from event_keys import event_key
from event_planner import KIND_REMINDER, KIND_RETENTION, LogicalEvent

log = logging.getLogger("checkinbridge.reconcile")

CREATED = "created"
SKIPPED = "skipped"
ERROR = "error"

# Transport failures surface as OSError, httplib2 or google-auth errors
REMOTE_ERRORS = (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError)


# ============================================================================
# Data Models
# ============================================================================

@dataclass
class ReconciliationResult:
    kind: str
    title: str
    date: str
    was_shifted: bool = False
    original_date: Optional[str] = None
    event_id: Optional[str] = None
    html_link: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    event_key: Optional[str] = None
    event_kind: Optional[str] = None
    calendar_route: Optional[str] = None
    participant_id: Optional[str] = None
    has_attendees: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "type": self.kind,
            "title": self.title,
            "date": self.date,
            "wasShifted": self.was_shifted,
            "originalDate": self.original_date,
            "eventId": self.event_id,
            "htmlLink": self.html_link,
            "reason": self.reason,
            "error": self.error,
            "eventKey": self.event_key,
            "eventKind": self.event_kind,
            "calendarType": self.calendar_route,
            "participantId": self.participant_id,
            "hasAttendees": self.has_attendees,
        }
        return {k: v for k, v in out.items() if v is not None}


@dataclass
class BatchReport:
    created: int = 0
    skipped: int = 0
    errors: int = 0
    reminder_events: int = 0
    retention_events: int = 0
    details: List[ReconciliationResult] = field(default_factory=list)

    def add(self, result: ReconciliationResult) -> None:
        self.details.append(result)
        if result.kind == CREATED:
            self.created += 1
            if result.event_kind == KIND_REMINDER:
                self.reminder_events += 1
            elif result.event_kind == KIND_RETENTION:
                self.retention_events += 1
        elif result.kind == SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def failed(self) -> List[ReconciliationResult]:
        return [d for d in self.details if d.kind == ERROR]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "reminderEvents": self.reminder_events,
            "retentionEvents": self.retention_events,
            "details": [d.to_dict() for d in self.details],
        }


class KeyLocks:
    """One lock per idempotency key, dropped once nobody holds a reference."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


_PROCESS_LOCKS = KeyLocks()


# ============================================================================
# Event body
# ============================================================================

def private_metadata(ev: LogicalEvent, key: str) -> Dict[str, str]:
    meta = {
        "source": ev.source_tag,
        "eventKey": key,
        "eventKind": ev.event_kind,
        "calendarRoute": ev.calendar_route,
        "demoMode": "true" if ev.demo_flag else "false",
    }
    if ev.attendee_email:
        meta["attendeeEmail"] = ev.attendee_email
    if ev.participant_id:
        meta["participantId"] = str(ev.participant_id)
    if ev.column_code:
        meta["columnCode"] = ev.column_code
    if ev.base_date:
        meta["baseDate"] = format_date(ev.base_date)
    return meta


def event_times(ev: LogicalEvent, time_of_day: str, tz_name: str, duration_minutes: int):
    """(start, end) as Google start/end objects."""
    if ev.all_day:
        # end date is exclusive
        return ({"date": ev.date.isoformat()},
                {"date": (ev.date + timedelta(days=1)).isoformat()})
    hour, minute = (int(part) for part in time_of_day.split(":"))
    start = datetime(ev.date.year, ev.date.month, ev.date.day, hour, minute, tzinfo=gettz(tz_name))
    end = start + timedelta(minutes=duration_minutes)
    return ({"dateTime": start.isoformat(), "timeZone": tz_name},
            {"dateTime": end.isoformat(), "timeZone": tz_name})


def build_event_body(ev: LogicalEvent, key: str, time_of_day: str, tz_name: str,
                     duration_minutes: int = 30, attendees_enabled: bool = False) -> Dict[str, Any]:
    """Build Google Calendar API event body"""
    start, end = event_times(ev, time_of_day, tz_name, duration_minutes)
    body: Dict[str, Any] = {
        "summary": ev.title,
        "description": ev.description or None,
        "start": start,
        "end": end,
        "reminders": {"useDefault": False, "overrides": []},
        "extendedProperties": {"private": private_metadata(ev, key)},
    }
    if ev.all_day:
        body["transparency"] = "transparent"
    if attendees_enabled and ev.attendee:
        body["attendees"] = [{"email": ev.attendee}]
    return body


# ============================================================================
# Engine
# ============================================================================

class Reconciler:
    def __init__(self, client, config, time_of_day: Optional[str] = None,
                 attendees_enabled: bool = True, locks: Optional[KeyLocks] = None):
        self.client = client
        self.config = config
        self.time_of_day = time_of_day or config.default_time
        self.attendees_enabled = attendees_enabled
        self.locks = _PROCESS_LOCKS if locks is None else locks

    def find_existing(self, calendar_id: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Event carrying key, or None. A failed lookup is logged and reported
        as not found so that a transient error never blocks creation; the
        price is a possible duplicate.
        """
        try:
            return self._lookup(calendar_id, key)
        except EventLookupError as e:
            log.warning(f"{e}; treating as not found")
            return None

    def _lookup(self, calendar_id: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            items = self.client.list_events(calendar_id, private_properties={"eventKey": key}, max_results=1)
        except REMOTE_ERRORS as e:
            if is_auth_error(e):
                raise AuthRequiredError(describe(e)) from e
            raise EventLookupError(f"Lookup for {key} on {calendar_id} failed: {describe(e)}") from e
        return items[0] if items else None

    def _create(self, calendar_id: str, body: Dict[str, Any], send_updates: str) -> Dict[str, Any]:
        try:
            return self.client.insert_event(calendar_id, body, send_updates=send_updates)
        except REMOTE_ERRORS as e:
            if is_auth_error(e):
                raise AuthRequiredError(describe(e)) from e
            raise RemoteWriteError(describe(e)) from e

    def reconcile(self, ev: LogicalEvent) -> ReconciliationResult:
        key = event_key(ev)
        calendar_id = self.config.calendar_id(ev.calendar_route)
        result = ReconciliationResult(
            kind=ERROR,
            title=ev.title,
            date=format_date(ev.date),
            was_shifted=ev.was_shifted,
            original_date=format_date(ev.original_date) if ev.was_shifted else None,
            event_key=key,
            event_kind=ev.event_kind,
            calendar_route=ev.calendar_route,
            participant_id=ev.participant_id,
        )

        with self.locks.get(key):
            existing = self.find_existing(calendar_id, key)
            if existing:
                log.info(f"Skipping {ev.title} on {result.date}: already exists ({existing.get('id')})")
                result.kind = SKIPPED
                result.event_id = existing.get("id")
                result.reason = "already exists"
                return result

            body = build_event_body(
                ev, key, self.time_of_day, self.config.timezone,
                self.config.event_duration_minutes, self.attendees_enabled,
            )
            result.has_attendees = "attendees" in body
            send_updates = "all" if result.has_attendees else "none"
            try:
                created = self._create(calendar_id, body, send_updates)
            except RemoteWriteError as e:
                log.error(f"Failed to create {ev.title} on {result.date}: {e}")
                result.error = str(e)
                return result

        log.info(f"Created {ev.title} on {result.date} in {calendar_id}")
        result.kind = CREATED
        result.event_id = created.get("id")
        result.html_link = created.get("htmlLink")
        return result

    def reconcile_all(self, events: Sequence[LogicalEvent]) -> BatchReport:
        """Sequential; an AuthRequiredError stops the run, anything else is per event."""
        report = BatchReport()
        for i, ev in enumerate(events, 1):
            report.add(self.reconcile(ev))
            if i % 50 == 0:
                log.debug(f"Progress: {report.created} created, {report.skipped} skipped, {report.errors} errors")
        log.info(f"Reconciled {len(events)} events: created={report.created} skipped={report.skipped} errors={report.errors}")
        return report
