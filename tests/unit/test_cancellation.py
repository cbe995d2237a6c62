"""Test cancellation rules (ownership, final status, window)."""
import pytest
from datetime import datetime

from clinic_booking.exceptions import (
    AuthorizationError,
    PolicyViolationError,
    StateTransitionError,
)
from clinic_booking.state import AppointmentStatus, CancelledBy
from tests.utils.booking_helpers import MONDAY, SUNDAY, at


class TestCanCancel:
    """Non-throwing cancellation check."""

    def test_owner_outside_window(self, scheduler, patient):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        assert scheduler.can_cancel(appointment, patient) == {"can_cancel": True, "reason": None}

    def test_exact_window_boundary_is_allowed(self, scheduler, patient):
        # now is Saturday 10:00; exactly 24 hours ahead
        appointment = scheduler.book(patient, at(SUNDAY, "10:00"))
        assert scheduler.can_cancel(appointment, patient)["can_cancel"] is True

    def test_inside_window_denied_for_patient(self, scheduler, patient):
        appointment = scheduler.book(patient, at(SUNDAY, "09:30"))
        result = scheduler.can_cancel(appointment, patient)

        assert result["can_cancel"] is False
        assert "24 hours" in result["reason"]

    def test_inside_window_allowed_for_staff(self, scheduler, patient, secretary, admin):
        appointment = scheduler.book(patient, at(SUNDAY, "09:30"))
        assert scheduler.can_cancel(appointment, secretary)["can_cancel"] is True
        assert scheduler.can_cancel(appointment, admin)["can_cancel"] is True

    def test_other_patient_denied(self, scheduler, patient, other_patient):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        result = scheduler.can_cancel(appointment, other_patient)

        assert result["can_cancel"] is False
        assert "own" in result["reason"]

    def test_final_status_denied(self, scheduler, patient, admin):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        scheduler.cancel(appointment)
        assert scheduler.can_cancel(appointment, admin)["can_cancel"] is False

    def test_past_appointment_denied_even_for_staff(self, scheduler, patient, admin, clock):
        appointment = scheduler.book(patient, at(SUNDAY, "10:00"))
        clock.set(datetime(2025, 6, 8, 11, 0))
        assert scheduler.can_cancel(appointment, admin)["can_cancel"] is False

    def test_zero_hour_window(self, make_scheduler, patient):
        scheduler = make_scheduler(cancellation_hours=0)
        appointment = scheduler.book(patient, at(SUNDAY, "09:00"))
        assert scheduler.can_cancel(appointment, patient)["can_cancel"] is True


class TestCancelFor:
    """Cancellation on behalf of an actor."""

    def test_patient_cancels_own_appointment(self, scheduler, patient):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        cancelled = scheduler.cancel_for(appointment, patient, reason="Feeling better")

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_by == CancelledBy.PATIENT
        assert cancelled.cancellation_reason == "Feeling better"

    def test_staff_cancellation_recorded_as_admin(self, scheduler, patient, secretary):
        appointment = scheduler.book(patient, at(SUNDAY, "09:30"))
        cancelled = scheduler.cancel_for(appointment, secretary)
        assert cancelled.cancelled_by == CancelledBy.ADMIN

    def test_window_closed(self, scheduler, patient):
        appointment = scheduler.book(patient, at(SUNDAY, "09:30"))

        with pytest.raises(PolicyViolationError) as exc_info:
            scheduler.cancel_for(appointment, patient)

        assert exc_info.value.error_code == "CANCELLATION_WINDOW_CLOSED"
        assert exc_info.value.context["deadline"] == "2025-06-07T09:30:00"
        assert scheduler.get(appointment.id).status == AppointmentStatus.PENDING

    def test_not_owner(self, scheduler, patient, other_patient):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        with pytest.raises(AuthorizationError):
            scheduler.cancel_for(appointment, other_patient)

    def test_already_final(self, scheduler, patient):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        scheduler.cancel_for(appointment, patient)

        with pytest.raises(StateTransitionError):
            scheduler.cancel_for(appointment, patient)

    def test_in_past(self, scheduler, patient, admin, clock):
        appointment = scheduler.book(patient, at(SUNDAY, "10:00"))
        scheduler.confirm(appointment)
        clock.set(datetime(2025, 6, 8, 12, 0))

        with pytest.raises(PolicyViolationError) as exc_info:
            scheduler.cancel_for(appointment, admin)
        assert exc_info.value.error_code == "APPOINTMENT_IN_PAST"

    def test_uses_stored_status_not_callers_copy(self, scheduler, patient, admin):
        appointment = scheduler.book(patient, at(MONDAY, "09:00"))
        scheduler.confirm(appointment)
        scheduler.complete(appointment)

        # `appointment` still says pending
        with pytest.raises(StateTransitionError):
            scheduler.cancel_for(appointment, admin)
