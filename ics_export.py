"""
Write a planned batch as an iCalendar file for dry-run review.

Each VEVENT mirrors the body the engine would send: timed events at the
configured time and duration, retention events as all-day.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Sequence

from dateutil.tz import gettz
from icalendar import Calendar, Event

from event_keys import event_key
from event_planner import LogicalEvent

log = logging.getLogger("checkinbridge.ics")

PRODID = "-//CheckinBridge//Dry Run//EN"


def build_calendar(events: Sequence[LogicalEvent], time_of_day: str, tz_name: str,
                   duration_minutes: int = 30) -> Calendar:
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    stamp = datetime.now(timezone.utc)
    tz = gettz(tz_name)
    hour, minute = (int(part) for part in time_of_day.split(":"))

    for ev in events:
        key = event_key(ev)
        vevent = Event()
        vevent.add("uid", f"{key}@checkinbridge")
        vevent.add("summary", ev.title)
        vevent.add("dtstamp", stamp)
        if ev.all_day:
            vevent.add("dtstart", ev.date)
            vevent.add("dtend", ev.date + timedelta(days=1))
            vevent.add("transp", "TRANSPARENT")
        else:
            # written as UTC so readers need no VTIMEZONE block
            start = datetime(ev.date.year, ev.date.month, ev.date.day, hour, minute, tzinfo=tz)
            start = start.astimezone(timezone.utc)
            vevent.add("dtstart", start)
            vevent.add("dtend", start + timedelta(minutes=duration_minutes))
        if ev.description:
            vevent.add("description", ev.description)
        vevent.add("categories", [ev.event_kind])
        vevent.add("x-checkin-key", key)
        vevent.add("x-checkin-route", ev.calendar_route)
        cal.add_component(vevent)
    return cal


def write_plan(events: Sequence[LogicalEvent], path: str, config, time_of_day: str = None) -> int:
    cal = build_calendar(events, time_of_day or config.default_time, config.timezone,
                         config.event_duration_minutes)
    with open(path, "wb") as f:
        f.write(cal.to_ical())
    log.info(f"Wrote {len(events)} planned events to {path}")
    return len(events)
