"""Configuration for the clinic booking core.

All clinic defaults centralized here - override through environment
variables (or a .env file) without touching code.
"""
import os
from datetime import time
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from clinic_booking.clock import SystemClock
from clinic_booking.logging_config import setup_structured_logging
from clinic_booking.models import ClinicPolicy, ScheduleEntry, WeeklyTemplate
from clinic_booking.scheduler import AppointmentScheduler
from clinic_booking.sql_ledger import SqlAlchemyBookingLedger
from clinic_booking.state import DayOfWeek

load_dotenv()


CLINIC_SETTINGS = {
    "slot_duration_minutes": 30,
    "max_patients_per_slot": 1,
    "advance_booking_days": 30,
    "cancellation_hours": 24,
    "no_show_threshold": 3,
    "no_show_lookback_days": None,
    "timezone": "Africa/Cairo",
}

OPERATING_HOURS = {
    "days": ["sunday", "monday", "tuesday", "wednesday", "thursday"],
    "start_time": "09:00",
    "end_time": "17:00",
    "break": {
        "start": "13:00",
        "end": "14:00"
    }
}

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///clinic_booking.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# env var -> ClinicPolicy field
_POLICY_ENV = {
    "CLINIC_SLOT_DURATION": "slot_duration_minutes",
    "CLINIC_MAX_PATIENTS_PER_SLOT": "max_patients_per_slot",
    "CLINIC_MAX_ADVANCE_DAYS": "advance_booking_days",
    "CLINIC_CANCELLATION_HOURS": "cancellation_hours",
    "CLINIC_MAX_NO_SHOWS": "no_show_threshold",
    "CLINIC_NO_SHOW_LOOKBACK_DAYS": "no_show_lookback_days",
}


def _env(environ: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def parse_time(value: str) -> time:
    """Parse 'HH:MM' into a time."""
    hours, minutes = value.strip().split(":")
    return time(hour=int(hours), minute=int(minutes))


def parse_working_days(value: str) -> List[DayOfWeek]:
    """
    Parse a comma separated weekday list.

    Accepts names ("sunday", "sun") or clinic numbers (0 = Sunday).

    Example:
        >>> parse_working_days("sun,mon,2")
        [<DayOfWeek.SUNDAY: 0>, <DayOfWeek.MONDAY: 1>, <DayOfWeek.TUESDAY: 2>]
    """
    days = []
    for raw in value.split(","):
        token = raw.strip().lower()
        if not token:
            continue
        if token.isdigit():
            day = DayOfWeek(int(token))
        else:
            matches = [d for d in DayOfWeek if d.name.lower().startswith(token[:3])]
            if not matches:
                raise ValueError(f"Unknown weekday: {raw.strip()}")
            day = matches[0]
        if day not in days:
            days.append(day)
    return days


def load_policy(environ: Optional[Mapping[str, str]] = None) -> ClinicPolicy:
    """
    Build a validated ClinicPolicy from defaults plus environment overrides.

    Args:
        environ: Mapping to read overrides from (defaults to os.environ)

    Returns:
        Immutable ClinicPolicy

    Raises:
        pydantic.ValidationError: If an override violates a policy constraint
        ValueError: If an override is not an integer
    """
    env = _env(environ)
    values: Dict[str, Optional[int]] = {
        field: CLINIC_SETTINGS[field] for field in _POLICY_ENV.values()
    }

    for env_name, field in _POLICY_ENV.items():
        raw = env.get(env_name)
        if raw is None or raw.strip() == "":
            continue
        values[field] = int(raw)

    return ClinicPolicy(**values)


def clinic_timezone(environ: Optional[Mapping[str, str]] = None) -> str:
    return _env(environ).get("CLINIC_TIMEZONE") or CLINIC_SETTINGS["timezone"]


def default_weekly_template(environ: Optional[Mapping[str, str]] = None) -> WeeklyTemplate:
    """
    Build the default weekly template from OPERATING_HOURS plus overrides.

    Every working day shares the same hours and break. Days not listed are
    added as inactive entries.
    """
    env = _env(environ)
    start = parse_time(env.get("CLINIC_DEFAULT_START_TIME") or OPERATING_HOURS["start_time"])
    end = parse_time(env.get("CLINIC_DEFAULT_END_TIME") or OPERATING_HOURS["end_time"])

    break_start_raw = env.get("CLINIC_DEFAULT_BREAK_START", OPERATING_HOURS["break"]["start"])
    break_end_raw = env.get("CLINIC_DEFAULT_BREAK_END", OPERATING_HOURS["break"]["end"])
    # Empty value disables the break
    break_start = parse_time(break_start_raw) if break_start_raw else None
    break_end = parse_time(break_end_raw) if break_end_raw else None

    working_days = parse_working_days(
        env.get("CLINIC_WORKING_DAYS") or ",".join(OPERATING_HOURS["days"])
    )

    entries = [
        ScheduleEntry(
            weekday=day,
            start_time=start,
            end_time=end,
            is_active=day in working_days,
            break_start=break_start,
            break_end=break_end,
        )
        for day in DayOfWeek
    ]
    return WeeklyTemplate(entries=entries)


def create_scheduler(ledger=None, environ: Optional[Mapping[str, str]] = None) -> AppointmentScheduler:
    """
    Wire an AppointmentScheduler from configuration.

    Configures structured logging at LOG_LEVEL and, unless a ledger is
    given, opens a SqlAlchemyBookingLedger on DATABASE_URL.

    Args:
        ledger: Existing BookingLedger to use instead of the SQL ledger
        environ: Mapping to read overrides from (defaults to os.environ)

    Returns:
        Configured AppointmentScheduler with an empty blackout calendar
    """
    env = _env(environ)
    setup_structured_logging(env.get("LOG_LEVEL") or LOG_LEVEL)

    if ledger is None:
        ledger = SqlAlchemyBookingLedger(database_url=env.get("DATABASE_URL") or DATABASE_URL)

    return AppointmentScheduler(
        ledger=ledger,
        policy=load_policy(env),
        template=default_weekly_template(env),
        clock=SystemClock(clinic_timezone(env)),
    )
