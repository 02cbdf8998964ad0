#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CheckinBridge - check-in events → Google Calendar
Version 1.2.0

Features:
- Manual mode: 1, 10 and 45 day check-ins from a base date
- CSV mode: BURST reminder columns plus derived retention events
- Deterministic key per logical event; never creates the same key twice
- Weekend dates move to the preceding Friday
- Reminder/retention events routed to their own calendars
- Demo tagging with bulk cleanup sweeps
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from calendar_client import GoogleCalendarClient
from cleanup import MatchCriteria, delete_all_demo, delete_by_match, delete_recent, list_tagged
from csv_source import read_rows
from date_utils import format_date, validate_date, validate_email, validate_time
from errors import AuthRequiredError, EventLookupError, ValidationError
from event_keys import event_key
from event_planner import (
    CsvRow, LogicalEvent, ManualRequest, BatchPlan, FOLLOW_UP_OFFSETS, plan_batch, plan_manual, summarize,
)
from ics_export import write_plan
from reconcile import Reconciler
from shared_utils import CheckinConfig, ConfigManager, GoogleCalendarAuth, setup_logging

VERSION = "1.2.0"

log = logging.getLogger("checkinbridge")

EXIT_OK = 0
EXIT_EVENT_ERRORS = 1
EXIT_FATAL = 2


@dataclass
class BatchOptions:
    time: Optional[str] = None
    demo_mode: Optional[bool] = None
    attendees: Optional[bool] = None


# ============================================================================
# Exposed operations
# ============================================================================

def plan_request(config: CheckinConfig, request: ManualRequest, invite_attendee: bool = True) -> List[LogicalEvent]:
    """Validate a manual request and expand it. Raises ValidationError."""
    base_date = validate_date(request.base_date, config.min_year, config.max_year)
    title = (request.title or "").strip()
    if not title:
        raise ValidationError("Title cannot be empty")
    email = validate_email(request.attendee_email)
    return plan_manual(base_date, title, email, demo_flag=config.demo_mode,
                       offsets=FOLLOW_UP_OFFSETS, invite_attendee=invite_attendee)


def plan_and_reconcile(client, config: CheckinConfig, request: ManualRequest,
                       invite_attendee: bool = True) -> Dict[str, Any]:
    """{created, skipped, errors, details[]} for one manual request."""
    time_of_day = validate_time(request.time) if request.time else config.default_time
    events = plan_request(config, request, invite_attendee)
    report = Reconciler(client, config, time_of_day, attendees_enabled=invite_attendee).reconcile_all(events)
    out = report.to_dict()
    del out["reminderEvents"], out["retentionEvents"]
    return out


def plan_csv(config: CheckinConfig, rows: Sequence[CsvRow], options: Optional[BatchOptions] = None) -> BatchPlan:
    options = options or BatchOptions()
    demo = config.demo_mode if options.demo_mode is None else options.demo_mode
    attendees = config.attendees_active if options.attendees is None else (options.attendees and config.attendees_active)
    return plan_batch(
        rows,
        rules=config.column_rules,
        demo_flag=demo,
        attendee_email=config.attendee_email if attendees else None,
        retention_offset_days=config.retention_offset_days,
    )


def plan_and_reconcile_batch(client, config: CheckinConfig, rows: Sequence[CsvRow],
                             options: Optional[BatchOptions] = None) -> Dict[str, Any]:
    """{created, skipped, errors, reminderEvents, retentionEvents, details[], invalidRows[]}"""
    options = options or BatchOptions()
    time_of_day = validate_time(options.time) if options.time else config.default_time
    plan = plan_csv(config, rows, options)
    reconciler = Reconciler(client, config, time_of_day, attendees_enabled=config.attendees_active)
    out = reconciler.reconcile_all(plan.events).to_dict()
    out["invalidRows"] = [err.to_dict() for err in plan.invalid_rows]
    return out


def preview(events: Sequence[LogicalEvent]) -> List[Dict[str, Any]]:
    """Dry-run view of planned events."""
    return [
        {
            "type": "dry-run",
            "title": ev.title,
            "date": ev.display_date(),
            "wasShifted": ev.was_shifted,
            "originalDate": format_date(ev.original_date) if ev.was_shifted else None,
            "calendarType": ev.calendar_route,
            "eventKey": event_key(ev),
        }
        for ev in events
    ]


# ============================================================================
# CLI
# ============================================================================

def confirm(prompt: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    answer = input(f"{prompt} (yes/no): ").strip().lower()
    return answer in ("yes", "y")


def get_client(config: CheckinConfig, interactive: bool) -> GoogleCalendarClient:
    service = GoogleCalendarAuth.get_service(config.token_file, config.credentials_file, interactive=interactive)
    return GoogleCalendarClient(service, api_delay=config.api_delay_seconds, max_retries=config.max_retries)


def print_details(details: Sequence[Dict[str, Any]]) -> None:
    for d in details:
        shift = f" (shifted from {d['originalDate']})" if d.get("wasShifted") else ""
        kind = d.get("type")
        if kind == "created":
            print(f"  ✓ Created: {d['title']} on {d['date']}{shift}")
            if d.get("htmlLink"):
                print(f"      {d['htmlLink']}")
        elif kind == "skipped":
            print(f"  ⏭ Skipped: {d['title']} on {d['date']} ({d.get('reason')})")
        elif kind == "dry-run":
            print(f"  • [{d['date']}] {d['title']} → {d['calendarType']}{shift}")
        elif kind == "error":
            print(f"  ✗ Error: {d['title']} on {d['date']}: {d.get('error')}")


def print_totals(results: Dict[str, Any]) -> None:
    print("=" * 50)
    print(f"Created: {results['created']}, Skipped: {results['skipped']}, Errors: {results['errors']}")
    if "reminderEvents" in results:
        print(f"  → Reminder: {results['reminderEvents']}, Retention: {results['retentionEvents']}")
    shifted = sum(1 for d in results["details"] if d.get("wasShifted"))
    if shifted:
        print(f"  → Weekend shifts: {shifted}")
    for row in results.get("invalidRows", []):
        print(f"  ✗ Invalid row: participant {row['participantId']} {row['column']} {row['date']!r}")
    print("=" * 50)


def print_error_details(details: Sequence[Dict[str, Any]]) -> None:
    for d in details:
        if d.get("eventId"):
            print(f"  ✗ {d.get('summary')} ({d['eventId']}): {d['error']}")
        else:
            print(f"  ✗ {d['calendarId']}: {d['error']}")


def cmd_create(args, config) -> int:
    request = ManualRequest(args.date, args.title, args.email, args.time)
    validate_time(args.time or config.default_time)
    planned = plan_request(config, request)
    if args.dry_run:
        print_details(preview(planned))
        return EXIT_OK
    client = get_client(config, not args.non_interactive)
    results = plan_and_reconcile(client, config, request)
    print_details(results["details"])
    print_totals(results)
    return EXIT_EVENT_ERRORS if results["errors"] else EXIT_OK


def cmd_delete(args, config) -> int:
    criteria = MatchCriteria(args.date, args.title, args.email)
    validate_date(args.date, config.min_year, config.max_year)
    validate_email(args.email)
    print(f"This will delete all check-in events for {args.title} (base date {args.date}, attendee {args.email}).")
    if not confirm("Are you sure?", args.yes):
        print("Cancelled.")
        return EXIT_OK
    results = delete_by_match(get_client(config, not args.non_interactive), config, criteria)
    for d in results["details"]:
        if d["type"] == "deleted":
            print(f"  ✓ Deleted: {d['title']} ({d['eventId']})")
        elif d["type"] == "not-found":
            print(f"  ⏭ Not found: {d['followUpType']} check-in")
        else:
            print(f"  ✗ Error: {d['followUpType']} check-in: {d['error']}")
    print(f"Deleted: {results['deleted']}, Not found: {results['notFound']}, Errors: {results['errors']}")
    return EXIT_EVENT_ERRORS if results["errors"] else EXIT_OK


def cmd_import_csv(args, config) -> int:
    rows = read_rows(args.path)
    options = BatchOptions(time=args.time)
    validate_time(args.time or config.default_time)
    plan = plan_csv(config, rows, options)
    summary = summarize(plan.events)
    print(f"CSV Summary: {summary['totalParticipants']} participants, {summary['totalEvents']} events")
    for title, count in summary["eventsByType"].items():
        print(f"  • {title}: {count}")
    print(f"Reminder calendar:  {config.calendar_id('reminder')}")
    print(f"Retention calendar: {config.calendar_id('retention')}")
    print(f"Attendees: {'Enabled (' + config.attendee_email + ')' if config.attendees_active else 'Disabled'}")

    if args.dry_run:
        print_details(preview(plan.events))
        for err in plan.invalid_rows:
            print(f"  ✗ Invalid row: {err}")
        if args.ics:
            write_plan(plan.events, args.ics, config, args.time)
            print(f"Wrote plan to {args.ics}")
        return EXIT_OK

    if not confirm("This will create REAL calendar events. Continue?", args.yes):
        print("Cancelled.")
        return EXIT_OK
    client = get_client(config, not args.non_interactive)
    results = plan_and_reconcile_batch(client, config, rows, options)
    print_details([d for d in results["details"] if d["type"] == "error"][:5])
    print_totals(results)
    return EXIT_EVENT_ERRORS if results["errors"] or results["invalidRows"] else EXIT_OK


def cmd_clear_demo(args, config) -> int:
    if not confirm("Delete ALL demo-tagged events on the configured calendars?", args.yes):
        print("Cancelled.")
        return EXIT_OK
    results = delete_all_demo(get_client(config, not args.non_interactive), config)
    print(f"Deleted: {results['deleted']}, Errors: {results['errors']}")
    print_error_details(results["errorDetails"])
    return EXIT_EVENT_ERRORS if results["errors"] else EXIT_OK


def cmd_delete_recent(args, config) -> int:
    if not confirm(f"Delete CheckinBridge events from the last {args.hours} hours?", args.yes):
        print("Cancelled.")
        return EXIT_OK
    results = delete_recent(get_client(config, not args.non_interactive), config, args.hours)
    for ev in results["eventsFound"][:10]:
        print(f"  • {ev['summary']} ({ev['start']})")
    print(f"Deleted: {results['deleted']}, Errors: {results['errors']}")
    print_error_details(results["errorDetails"])
    return EXIT_EVENT_ERRORS if results["errors"] else EXIT_OK


def cmd_list(args, config) -> int:
    listing = list_tagged(get_client(config, not args.non_interactive), config, args.calendar)
    for calendar_id, events in listing.items():
        print(f"\n{calendar_id}")
        print("=" * 60)
        if not events:
            print("No events found.")
        for i, ev in enumerate(events, 1):
            demo = " [demo]" if ev["demoMode"] == "true" else ""
            print(f"{i}. {ev['summary']}{demo}")
            print(f"   Date: {ev['start']}  Source: {ev['source']}  Kind: {ev['eventKind']}  ID: {ev['eventId']}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create and clean up check-in events in Google Calendar.")
    parser.add_argument("--config", help="Path to JSON config (default: checkin_config.json)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--demo", dest="demo_mode", action="store_true", default=None,
                      help="Tag created events as demo events")
    mode.add_argument("--live", dest="demo_mode", action="store_false", help="Create untagged (real) events")
    parser.add_argument("--non-interactive", action="store_true",
                        help="Fail instead of opening a browser when no valid token exists")
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def manual_args(p):
        p.add_argument("--date", required=True, help="Base date MM/DD/YYYY")
        p.add_argument("--title", required=True, help="Participant ID or event name")
        p.add_argument("--email", required=True, help="Participant email")

    p = sub.add_parser("create", help="Create 1/10/45 day check-ins")
    manual_args(p)
    p.add_argument("--time", help="Start time HH:MM")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_create)

    p = sub.add_parser("delete", help="Delete check-ins created for a base date/title/email")
    manual_args(p)
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("import-csv", help="Create reminder and retention events from a CSV export")
    p.add_argument("path")
    p.add_argument("--time", help="Start time HH:MM")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--ics", help="With --dry-run, also write the plan to this .ics file")
    p.set_defaults(func=cmd_import_csv)

    p = sub.add_parser("clear-demo", help="Delete all demo-tagged events")
    p.set_defaults(func=cmd_clear_demo)

    p = sub.add_parser("delete-recent", help="Delete our events from the last N hours")
    p.add_argument("--hours", type=int, default=24)
    p.set_defaults(func=cmd_delete_recent)

    p = sub.add_parser("list", help="List our events")
    p.add_argument("--calendar", action="append", choices=["default", "reminder", "retention"])
    p.set_defaults(func=cmd_list)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = ConfigManager.load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Configuration failed: {e}", file=sys.stderr)
        return EXIT_FATAL
    if args.demo_mode is not None:
        config.demo_mode = args.demo_mode

    setup_logging(config.log_dir, logging.DEBUG if args.verbose else logging.INFO)
    log.info(f"CheckinBridge v{VERSION} ({'demo' if config.demo_mode else 'live'} mode) - {args.command}")

    start_time = time.time()
    try:
        code = args.func(args, config)
    except ValidationError as e:
        log.error(f"Invalid input: {e}")
        return EXIT_FATAL
    except AuthRequiredError as e:
        log.error(f"Authorization required: {e}")
        return EXIT_FATAL
    except EventLookupError as e:
        log.error(f"Calendar unavailable: {e}")
        return EXIT_FATAL
    except (OSError, ValueError) as e:
        log.error(f"Failed: {e}")
        return EXIT_FATAL
    log.info(f"Done in {time.time() - start_time:.1f}s")
    return code


if __name__ == "__main__":
    sys.exit(main())
