#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Thin wrapper over the Google Calendar v3 events resource.

Handles paging, the per-call throttle and rate-limit backoff. HttpError is
re-raised to the caller once retries are exhausted.
"""

import logging
import random
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from googleapiclient.errors import HttpError

from errors import http_status

log = logging.getLogger("checkinbridge.client")

MAX_PAGE_SIZE = 2500


def sleep_with_jitter(base_seconds: float) -> None:
    if base_seconds <= 0:
        return
    jitter = base_seconds * random.uniform(-0.20, 0.20)
    time.sleep(max(0.0, base_seconds + jitter))


def is_rate_limit_error(e: HttpError) -> bool:
    status = http_status(e)
    if status == 429:
        return True
    if status == 403:
        content = getattr(e, "content", b"") or b""
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="ignore")
        return "rateLimitExceeded" in content or "userRateLimitExceeded" in content
    return False


class GoogleCalendarClient:
    """list/insert/delete against one authorized Calendar service."""

    def __init__(self, service, api_delay: float = 0.1, max_retries: int = 5):
        self.service = service
        self.api_delay = api_delay
        self.max_retries = max_retries

    def _execute(self, req_builder: Callable[[], Any], op_desc: str) -> Any:
        attempt = 0
        backoff = 1.0
        while True:
            attempt += 1
            sleep_with_jitter(self.api_delay)
            try:
                return req_builder().execute()
            except HttpError as e:
                if is_rate_limit_error(e) and attempt < self.max_retries:
                    wait = backoff + random.uniform(0.0, 1.0)
                    log.info(f"[rate] {op_desc} got {http_status(e)}; sleeping {wait:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait)
                    backoff = min(backoff * 2.0, 30.0)
                    continue
                raise

    def list_events(
        self,
        calendar_id: str,
        private_properties: Optional[Mapping[str, str]] = None,
        time_min: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """All matching single events, following nextPageToken."""
        kwargs: Dict[str, Any] = {
            "calendarId": calendar_id,
            "singleEvents": True,
            "showDeleted": False,
            "maxResults": min(max_results or MAX_PAGE_SIZE, MAX_PAGE_SIZE),
        }
        if private_properties:
            kwargs["privateExtendedProperty"] = [f"{k}={v}" for k, v in private_properties.items()]
        if time_min:
            kwargs["timeMin"] = time_min

        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            resp = self._execute(
                lambda: self.service.events().list(pageToken=page_token, **kwargs),
                "events.list",
            )
            items.extend(resp.get("items", []))
            if max_results and len(items) >= max_results:
                return items[:max_results]
            page_token = resp.get("nextPageToken")
            if not page_token:
                return items

    def insert_event(self, calendar_id: str, body: Dict[str, Any], send_updates: str = "none") -> Dict[str, Any]:
        return self._execute(
            lambda: self.service.events().insert(calendarId=calendar_id, body=body, sendUpdates=send_updates),
            "events.insert",
        )

    def delete_event(self, calendar_id: str, event_id: str, send_updates: str = "none") -> None:
        self._execute(
            lambda: self.service.events().delete(calendarId=calendar_id, eventId=event_id, sendUpdates=send_updates),
            "events.delete",
        )
