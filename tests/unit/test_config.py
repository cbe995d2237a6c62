"""Test configuration loading."""
import pytest
from datetime import time
from pydantic import ValidationError as PydanticValidationError

from clinic_booking.config import (
    CLINIC_SETTINGS,
    OPERATING_HOURS,
    clinic_timezone,
    create_scheduler,
    default_weekly_template,
    load_policy,
    parse_time,
    parse_working_days,
)
from clinic_booking.ledger import InMemoryBookingLedger
from clinic_booking.slots import generate_slot_times
from clinic_booking.sql_ledger import SqlAlchemyBookingLedger
from clinic_booking.state import DayOfWeek


class TestLoadPolicy:
    """Test policy defaults and env overrides."""

    def test_defaults(self):
        policy = load_policy({})

        assert policy.slot_duration_minutes == CLINIC_SETTINGS["slot_duration_minutes"]
        assert policy.advance_booking_days == 30
        assert policy.cancellation_hours == 24
        assert policy.no_show_threshold == 3
        assert policy.no_show_lookback_days is None

    def test_env_overrides(self):
        policy = load_policy({
            "CLINIC_SLOT_DURATION": "20",
            "CLINIC_MAX_PATIENTS_PER_SLOT": "2",
            "CLINIC_MAX_ADVANCE_DAYS": "14",
            "CLINIC_CANCELLATION_HOURS": "12",
            "CLINIC_MAX_NO_SHOWS": "5",
            "CLINIC_NO_SHOW_LOOKBACK_DAYS": "180",
        })

        assert policy.slot_duration_minutes == 20
        assert policy.max_patients_per_slot == 2
        assert policy.advance_booking_days == 14
        assert policy.cancellation_hours == 12
        assert policy.no_show_threshold == 5
        assert policy.no_show_lookback_days == 180

    def test_blank_override_keeps_default(self):
        assert load_policy({"CLINIC_SLOT_DURATION": " "}).slot_duration_minutes == 30

    def test_invalid_override_rejected(self):
        with pytest.raises(PydanticValidationError):
            load_policy({"CLINIC_SLOT_DURATION": "0"})

    def test_non_numeric_override_rejected(self):
        with pytest.raises(ValueError):
            load_policy({"CLINIC_MAX_ADVANCE_DAYS": "thirty"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CLINIC_CANCELLATION_HOURS", "6")
        assert load_policy().cancellation_hours == 6


class TestWeeklyTemplate:
    """Test the default template builder."""

    def test_default_template(self):
        template = default_weekly_template({})

        assert len(template.entries) == 7
        assert template.working_days() == [
            DayOfWeek.SUNDAY,
            DayOfWeek.MONDAY,
            DayOfWeek.TUESDAY,
            DayOfWeek.WEDNESDAY,
            DayOfWeek.THURSDAY,
        ]
        sunday = template.entry_for(DayOfWeek.SUNDAY)
        assert sunday.start_time == parse_time(OPERATING_HOURS["start_time"])
        assert sunday.break_start == time(13, 0)
        assert len(generate_slot_times(sunday, 30)) == 14

    def test_overridden_hours_and_days(self):
        template = default_weekly_template({
            "CLINIC_DEFAULT_START_TIME": "08:00",
            "CLINIC_DEFAULT_END_TIME": "12:00",
            "CLINIC_DEFAULT_BREAK_START": "",
            "CLINIC_DEFAULT_BREAK_END": "",
            "CLINIC_WORKING_DAYS": "sat, mon",
        })

        assert template.working_days() == [DayOfWeek.MONDAY, DayOfWeek.SATURDAY]
        monday = template.entry_for(DayOfWeek.MONDAY)
        assert monday.start_time == time(8, 0)
        assert not monday.has_break()
        assert len(generate_slot_times(monday, 30)) == 8

    def test_break_outside_overridden_hours_rejected(self):
        with pytest.raises(PydanticValidationError):
            default_weekly_template({"CLINIC_DEFAULT_END_TIME": "12:00"})


class TestParsers:
    """Test small parsing helpers."""

    def test_parse_time(self):
        assert parse_time(" 09:30 ") == time(9, 30)

    def test_parse_working_days_names_and_numbers(self):
        assert parse_working_days("sunday,Mon,2,mon") == [
            DayOfWeek.SUNDAY,
            DayOfWeek.MONDAY,
            DayOfWeek.TUESDAY,
        ]

    def test_parse_working_days_unknown(self):
        with pytest.raises(ValueError):
            parse_working_days("funday")

    def test_clinic_timezone(self):
        assert clinic_timezone({}) == "Africa/Cairo"
        assert clinic_timezone({"CLINIC_TIMEZONE": "Europe/Berlin"}) == "Europe/Berlin"


class TestCreateScheduler:
    """Test wiring from configuration."""

    def test_create_scheduler_with_sql_ledger(self):
        scheduler = create_scheduler(environ={
            "DATABASE_URL": "sqlite:///:memory:",
            "LOG_LEVEL": "WARNING",
            "CLINIC_MAX_PATIENTS_PER_SLOT": "4",
            "CLINIC_TIMEZONE": "Europe/London",
        })

        assert isinstance(scheduler.ledger, SqlAlchemyBookingLedger)
        assert scheduler.policy.max_patients_per_slot == 4
        assert str(scheduler.clock.timezone) == "Europe/London"
        assert len(scheduler.template.entries) == 7

    def test_create_scheduler_with_given_ledger(self):
        ledger = InMemoryBookingLedger()
        scheduler = create_scheduler(ledger=ledger, environ={})
        assert scheduler.ledger is ledger
