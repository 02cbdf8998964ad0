#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Bulk cleanup sweeps over events CheckinBridge created.

Only events whose private `source` is one of ours are ever touched.
Deletion is best effort: a failure is recorded and the sweep moves on.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from dateutil.parser import isoparse
from dateutil.tz import gettz

from date_utils import validate_date, validate_email
from errors import AuthRequiredError, EventLookupError, describe, http_status, is_auth_error
from event_keys import SOURCE_CSV, SOURCE_MANUAL, event_key
from event_planner import FOLLOW_UP_OFFSETS, plan_manual
from reconcile import REMOTE_ERRORS, Reconciler

log = logging.getLogger("checkinbridge.cleanup")

RECOGNIZED_SOURCES = (SOURCE_MANUAL, SOURCE_CSV)


@dataclass
class MatchCriteria:
    base_date: str
    title: str
    attendee_email: str


def private_props(item: Dict[str, Any]) -> Dict[str, str]:
    return (item.get("extendedProperties") or {}).get("private") or {}


def is_our_event(item: Dict[str, Any]) -> bool:
    return private_props(item).get("source") in RECOGNIZED_SOURCES


def is_demo_event(item: Dict[str, Any]) -> bool:
    return private_props(item).get("demoMode") == "true"


def event_summary(item: Dict[str, Any], calendar_id: Optional[str] = None) -> Dict[str, Any]:
    start = item.get("start") or {}
    meta = private_props(item)
    out = {
        "eventId": item.get("id"),
        "summary": item.get("summary", "(No title)"),
        "start": start.get("dateTime") or start.get("date"),
        "source": meta.get("source"),
        "eventKind": meta.get("eventKind"),
        "participantId": meta.get("participantId"),
        "demoMode": meta.get("demoMode"),
    }
    if calendar_id:
        out["calendarId"] = calendar_id
    return out


def _delete(client, calendar_id: str, item: Dict[str, Any]) -> Optional[str]:
    """Delete one event. Returns an error message, or None on success."""
    event_id = item.get("id")
    send_updates = "all" if item.get("attendees") else "none"
    try:
        client.delete_event(calendar_id, event_id, send_updates=send_updates)
    except REMOTE_ERRORS as e:
        if is_auth_error(e):
            raise AuthRequiredError(describe(e)) from e
        if http_status(e) == 410:
            log.info(f"Already gone: {event_id}")
            return None
        log.error(f"Failed to delete {event_id}: {describe(e)}")
        return describe(e)
    log.info(f"Deleted {item.get('summary', event_id)} ({event_id})")
    return None


def _list(client, calendar_id: str, **kwargs) -> List[Dict[str, Any]]:
    try:
        return client.list_events(calendar_id, **kwargs)
    except REMOTE_ERRORS as e:
        if is_auth_error(e):
            raise AuthRequiredError(describe(e)) from e
        raise EventLookupError(f"Listing {calendar_id} failed: {describe(e)}") from e


def _list_sources(client, calendar_id: str) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for source in RECOGNIZED_SOURCES:
        items.extend(_list(client, calendar_id, private_properties={"source": source}))
    return items


def start_instant(item: Dict[str, Any], tz_name: str) -> Optional[datetime]:
    """Start of an event as an aware datetime; all-day events start at local midnight."""
    start = item.get("start") or {}
    if start.get("dateTime"):
        value = isoparse(start["dateTime"])
    elif start.get("date"):
        value = isoparse(start["date"])
    else:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=gettz(tz_name))
    return value


# ============================================================================
# Sweeps
# ============================================================================

def delete_by_match(client, config, criteria: MatchCriteria,
                    offsets: Sequence = FOLLOW_UP_OFFSETS) -> Dict[str, Any]:
    """Delete the check-ins a manual request would have created."""
    base_date = validate_date(criteria.base_date, config.min_year, config.max_year)
    email = validate_email(criteria.attendee_email)
    events = plan_manual(base_date, criteria.title.strip(), email, offsets=offsets)
    finder = Reconciler(client, config)

    results: Dict[str, Any] = {"deleted": 0, "notFound": 0, "errors": 0, "details": []}
    for ev in events:
        key = event_key(ev)
        calendar_id = config.calendar_id(ev.calendar_route)
        existing = finder.find_existing(calendar_id, key)
        if not existing:
            results["notFound"] += 1
            results["details"].append({"type": "not-found", "followUpType": ev.label, "eventKey": key})
            continue

        error = _delete(client, calendar_id, existing)
        if error:
            results["errors"] += 1
            results["details"].append({"type": "error", "followUpType": ev.label, "eventKey": key, "error": error})
        else:
            results["deleted"] += 1
            results["details"].append({
                "type": "deleted",
                "title": existing.get("summary"),
                "eventId": existing.get("id"),
                "followUpType": ev.label,
            })
    return results


def _list_failed(results: Dict[str, Any], calendar_id: str, error: EventLookupError) -> None:
    log.error(f"{error}; skipping calendar")
    results["errors"] += 1
    results["errorDetails"].append({"calendarId": calendar_id, "error": str(error)})


def delete_all_demo(client, config) -> Dict[str, Any]:
    """Delete every demo-tagged event of ours on every configured calendar."""
    results: Dict[str, Any] = {"deleted": 0, "errors": 0, "errorDetails": []}
    for calendar_id in config.calendar_ids():
        try:
            tagged = _list_sources(client, calendar_id)
        except EventLookupError as e:
            _list_failed(results, calendar_id, e)
            continue
        demo_events = [item for item in tagged if is_demo_event(item)]
        log.info(f"Found {len(demo_events)} demo events on {calendar_id}")
        for item in demo_events:
            error = _delete(client, calendar_id, item)
            if error:
                results["errors"] += 1
                results["errorDetails"].append({
                    "calendarId": calendar_id,
                    "eventId": item.get("id"),
                    "summary": item.get("summary"),
                    "error": error,
                })
            else:
                results["deleted"] += 1
    return results


def delete_recent(client, config, hours: int = 24, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Delete our events starting at or after now - hours."""
    if hours <= 0:
        raise ValueError("hours must be positive")
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=hours)
    time_min = cutoff.isoformat()
    log.info(f"Scanning for events since {time_min}")

    results: Dict[str, Any] = {"deleted": 0, "errors": 0, "eventsFound": [], "errorDetails": []}
    for calendar_id in config.calendar_ids():
        try:
            # timeMin bounds the end time; the start is checked below
            items = _list(client, calendar_id, time_min=time_min)
        except EventLookupError as e:
            _list_failed(results, calendar_id, e)
            continue
        for item in items:
            if not is_our_event(item):
                continue
            started = start_instant(item, config.timezone)
            if started is None or started < cutoff:
                continue
            summary = event_summary(item, calendar_id)
            results["eventsFound"].append(summary)
            error = _delete(client, calendar_id, item)
            if error:
                results["errors"] += 1
                results["errorDetails"].append(dict(summary, error=error))
            else:
                results["deleted"] += 1
    return results


def list_tagged(client, config, routes: Optional[Sequence[str]] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Our events grouped by calendar id. Raises EventLookupError if a calendar cannot be listed."""
    if routes:
        calendar_ids = list(dict.fromkeys(config.calendar_id(r) for r in routes))
    else:
        calendar_ids = config.calendar_ids()
    listing: Dict[str, List[Dict[str, Any]]] = {}
    for calendar_id in calendar_ids:
        found = [event_summary(item) for item in _list_sources(client, calendar_id)]
        listing[calendar_id] = sorted(found, key=lambda ev: ev["start"] or "")
    return listing
