"""Test clocks and error payloads."""
from datetime import date, datetime, time

from clinic_booking.clock import FixedClock, SystemClock
from clinic_booking.exceptions import (
    BookingError,
    PolicyViolationError,
    SlotUnavailableError,
    StateTransitionError,
)
from clinic_booking.state import AppointmentStatus


class TestClocks:

    def test_fixed_clock(self):
        clock = FixedClock(datetime(2025, 6, 7, 10, 0))
        assert clock.now() == datetime(2025, 6, 7, 10, 0)
        assert clock.today() == date(2025, 6, 7)

        clock.advance(hours=15)
        assert clock.today() == date(2025, 6, 8)

    def test_system_clock_is_naive_local_time(self):
        now = SystemClock("Africa/Cairo").now()
        assert now.tzinfo is None
        assert isinstance(SystemClock().today(), date)


class TestErrors:

    def test_all_errors_share_base(self):
        for error_class in (SlotUnavailableError, PolicyViolationError, StateTransitionError):
            assert issubclass(error_class, BookingError)

    def test_slot_unavailable_payload(self):
        error = SlotUnavailableError(date(2025, 6, 8), time(9, 0), reason="vacation")

        assert error.to_dict() == {
            "success": False,
            "message": "The clinic is closed for vacation on this date",
            "error_code": "SLOT_NOT_AVAILABLE",
            "context": {"date": "2025-06-08", "time": "09:00", "reason": "vacation"},
        }

    def test_policy_violation_custom_code(self):
        error = PolicyViolationError("blocked", error_code="TOO_MANY_NO_SHOWS")
        assert error.error_code == "TOO_MANY_NO_SHOWS"
        assert PolicyViolationError("x").error_code == "POLICY_VIOLATION"

    def test_state_transition_message(self):
        error = StateTransitionError(3, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)
        assert str(error) == "Cannot move appointment 3 from 'completed' to 'cancelled'"
        assert error.current == AppointmentStatus.COMPLETED
