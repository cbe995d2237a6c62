"""Shared test fixtures."""
from datetime import time

import pytest

from clinic_booking.clock import FixedClock
from clinic_booking.ledger import InMemoryBookingLedger
from clinic_booking.models import (
    Actor,
    BlackoutCalendar,
    ClinicPolicy,
    ScheduleEntry,
    WeeklyTemplate,
)
from clinic_booking.scheduler import AppointmentScheduler
from clinic_booking.state import ActorRole
from tests.utils.booking_helpers import NOW, WORKING_DAYS


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def template() -> WeeklyTemplate:
    """Sunday-Thursday 09:00-17:00 with a 13:00-14:00 break."""
    return WeeklyTemplate(entries=[
        ScheduleEntry(
            weekday=day,
            start_time=time(9, 0),
            end_time=time(17, 0),
            break_start=time(13, 0),
            break_end=time(14, 0),
        )
        for day in WORKING_DAYS
    ])


@pytest.fixture
def blackouts() -> BlackoutCalendar:
    return BlackoutCalendar()


@pytest.fixture
def policy() -> ClinicPolicy:
    return ClinicPolicy()


@pytest.fixture
def ledger() -> InMemoryBookingLedger:
    return InMemoryBookingLedger()


@pytest.fixture
def scheduler(ledger, policy, template, blackouts, clock) -> AppointmentScheduler:
    return AppointmentScheduler(
        ledger=ledger,
        policy=policy,
        template=template,
        blackouts=blackouts,
        clock=clock,
    )


@pytest.fixture
def make_scheduler(ledger, template, blackouts, clock):
    """Build a scheduler with policy overrides."""
    def _create(**policy_overrides) -> AppointmentScheduler:
        return AppointmentScheduler(
            ledger=ledger,
            policy=ClinicPolicy(**policy_overrides),
            template=template,
            blackouts=blackouts,
            clock=clock,
        )
    return _create


@pytest.fixture
def patient() -> Actor:
    return Actor(id=1, role=ActorRole.PATIENT)


@pytest.fixture
def other_patient() -> Actor:
    return Actor(id=2, role=ActorRole.PATIENT)


@pytest.fixture
def secretary() -> Actor:
    return Actor(id=100, role=ActorRole.SECRETARY)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=101, role=ActorRole.ADMIN)
