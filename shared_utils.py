"""
Shared utilities for CheckinBridge
Authentication, configuration and logging used by every entry point
"""
import os
import sys
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dateutil.tz import gettz
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from date_utils import validate_time
from errors import AuthRequiredError
from event_planner import ColumnRule, load_column_rules, ROUTE_DEFAULT, ROUTE_REMINDER, ROUTE_RETENTION

SCOPES = ["https://www.googleapis.com/auth/calendar"]
DEFAULT_CONFIG_FILE = "checkin_config.json"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

log = logging.getLogger("checkinbridge")


class GoogleCalendarAuth:
    """Centralized Google Calendar authentication."""

    @staticmethod
    def get_credentials(token_file, credentials_file, scopes=SCOPES, interactive=True):
        creds = None
        if os.path.exists(token_file):
            try:
                creds = Credentials.from_authorized_user_file(token_file, scopes)
            except ValueError as e:
                log.warning(f"Failed to load {token_file}, re-authenticating: {e}")
                creds = None

        if creds and creds.valid:
            return creds

        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except RefreshError as e:
                log.warning(f"Token refresh failed: {e}")
                creds = None

        if not creds or not creds.valid:
            if not interactive:
                raise AuthRequiredError(f"No valid token in {token_file}; run an interactive login first")
            if not os.path.exists(credentials_file):
                raise AuthRequiredError(
                    f"{credentials_file} not found. Create an OAuth client (Desktop app) in the "
                    "Google Cloud console and save its JSON there."
                )
            flow = InstalledAppFlow.from_client_secrets_file(credentials_file, scopes)
            creds = flow.run_local_server(port=0)

        with open(token_file, "w") as token:
            token.write(creds.to_json())
        return creds

    @staticmethod
    def get_service(token_file, credentials_file, scopes=SCOPES, interactive=True):
        """Returns authenticated Google Calendar service."""
        creds = GoogleCalendarAuth.get_credentials(token_file, credentials_file, scopes, interactive)
        return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class CheckinConfig:
    default_calendar_id: str = "primary"
    reminder_calendar_id: Optional[str] = None
    retention_calendar_id: Optional[str] = None
    timezone: str = "America/New_York"
    default_time: str = "09:00"
    event_duration_minutes: int = 30
    retention_offset_days: int = 45
    demo_mode: bool = False
    enable_attendees: bool = False
    attendee_email: Optional[str] = None
    api_delay_seconds: float = 0.1
    max_retries: int = 5
    min_year: int = 2000
    max_year: int = 2100
    token_file: str = "token.json"
    credentials_file: str = "credentials.json"
    log_dir: str = "logs"
    column_rules: Dict[str, ColumnRule] = field(default_factory=lambda: load_column_rules(None))

    def calendar_id(self, route: str) -> str:
        """Calendar id for a route; unset reminder/retention ids fall back to default."""
        if route == ROUTE_REMINDER:
            return self.reminder_calendar_id or self.default_calendar_id
        if route == ROUTE_RETENTION:
            return self.retention_calendar_id or self.default_calendar_id
        if route == ROUTE_DEFAULT:
            return self.default_calendar_id
        raise ValueError(f"Unknown calendar route: {route!r}")

    def calendar_ids(self) -> List[str]:
        """Distinct calendar ids across all routes, default first."""
        ids: List[str] = []
        for route in (ROUTE_DEFAULT, ROUTE_REMINDER, ROUTE_RETENTION):
            cal_id = self.calendar_id(route)
            if cal_id not in ids:
                ids.append(cal_id)
        return ids

    @property
    def attendees_active(self) -> bool:
        return bool(self.enable_attendees and self.attendee_email)


class ConfigManager:
    """Centralized configuration management."""

    ENV_OVERRIDES = {
        "CHECKIN_CALENDAR_ID": "default_calendar_id",
        "REMINDER_CALENDAR_ID": "reminder_calendar_id",
        "RETENTION_CALENDAR_ID": "retention_calendar_id",
        "CHECKIN_TIMEZONE": "timezone",
        "DEMO_MODE": "demo_mode",
        "ENABLE_ATTENDEES": "enable_attendees",
        "PRODUCTION_ATTENDEE_EMAIL": "attendee_email",
    }
    BOOL_FIELDS = {"demo_mode", "enable_attendees"}

    @staticmethod
    def load_config(config_file: Optional[str] = None, environ=None) -> CheckinConfig:
        """Load JSON config (if present), apply env overrides and validate."""
        environ = os.environ if environ is None else environ
        config_file = config_file or environ.get("CHECKIN_CONFIG") or DEFAULT_CONFIG_FILE

        raw: Dict[str, Any] = {}
        if os.path.exists(config_file):
            with open(config_file, "r") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError(f"{config_file} must contain a JSON object")

        for env_name, key in ConfigManager.ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value is None or value == "":
                continue
            raw[key] = _env_bool(value) if key in ConfigManager.BOOL_FIELDS else value

        return ConfigManager.from_dict(raw)

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> CheckinConfig:
        known = set(CheckinConfig.__dataclass_fields__)
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown config fields: {unknown}")

        values = dict(raw)
        values["column_rules"] = load_column_rules(values.get("column_rules"))
        config = CheckinConfig(**values)

        if gettz(config.timezone) is None:
            raise ValueError(f"Invalid timezone '{config.timezone}'")
        config.default_time = validate_time(config.default_time)
        if int(config.event_duration_minutes) <= 0:
            raise ValueError("event_duration_minutes must be positive")
        if config.enable_attendees and not config.attendee_email:
            log.warning("enable_attendees is set but attendee_email is empty; no attendees will be added")
        return config


def setup_logging(log_dir: Optional[str] = "logs", level=logging.INFO, filename="checkin_sync.log"):
    """File + stdout logging, once per process."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.insert(0, logging.FileHandler(os.path.join(log_dir, filename)))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # discovery cache and http chatter are not useful at INFO
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    return log
