"""Shared fixtures: an in-memory calendar and HttpError construction."""
import itertools
from collections import defaultdict
from datetime import date, datetime, timezone

import httplib2
import pytest
from googleapiclient.errors import HttpError

from shared_utils import CheckinConfig


def make_http_error(status, content=b""):
    resp = httplib2.Response({"status": status})
    return HttpError(resp, content, uri="https://www.googleapis.com/calendar/v3/test")


def _start_instant(item):
    start = item.get("start") or {}
    if "dateTime" in start:
        return datetime.fromisoformat(start["dateTime"])
    d = date.fromisoformat(start["date"])
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


class FakeCalendarClient:
    """Stores events per calendar id and supports the filters the engine uses."""

    def __init__(self):
        self.calendars = defaultdict(dict)
        self.inserts = []
        self.deletes = []
        self.list_calls = []
        self.list_error = None
        self.insert_errors = {}
        self.delete_errors = {}
        self._ids = itertools.count(1)

    def add(self, calendar_id, body):
        event_id = f"evt{next(self._ids)}"
        item = dict(body, id=event_id, htmlLink=f"https://calendar.google.com/event?eid={event_id}")
        self.calendars[calendar_id][event_id] = item
        return item

    def all_events(self, calendar_id=None):
        if calendar_id is not None:
            return list(self.calendars[calendar_id].values())
        return [item for cal in self.calendars.values() for item in cal.values()]

    def list_events(self, calendar_id, private_properties=None, time_min=None, max_results=None):
        self.list_calls.append((calendar_id, private_properties, time_min))
        if self.list_error is not None:
            raise self.list_error
        items = []
        for item in self.calendars[calendar_id].values():
            private = (item.get("extendedProperties") or {}).get("private") or {}
            if private_properties and any(private.get(k) != v for k, v in private_properties.items()):
                continue
            if time_min and _start_instant(item) < datetime.fromisoformat(time_min):
                continue
            items.append(item)
        return items[:max_results] if max_results else items

    def insert_event(self, calendar_id, body, send_updates="none"):
        self.inserts.append((calendar_id, body, send_updates))
        error = self.insert_errors.get(body.get("summary"))
        if error is not None:
            raise error
        return self.add(calendar_id, body)

    def delete_event(self, calendar_id, event_id, send_updates="none"):
        self.deletes.append((calendar_id, event_id, send_updates))
        error = self.delete_errors.get(event_id)
        if error is not None:
            raise error
        if event_id not in self.calendars[calendar_id]:
            raise make_http_error(410)
        del self.calendars[calendar_id][event_id]


@pytest.fixture
def fake_client():
    return FakeCalendarClient()


@pytest.fixture
def config():
    return CheckinConfig(
        default_calendar_id="primary",
        reminder_calendar_id="reminders@group.calendar.google.com",
        retention_calendar_id="retention@group.calendar.google.com",
        api_delay_seconds=0,
    )
