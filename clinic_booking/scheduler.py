"""Appointment scheduler: booking, lifecycle and clinic policy.

Every mutation goes through the booking ledger. Each call either returns
the resulting Appointment or raises exactly one BookingError subclass.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from clinic_booking import slots as slot_engine
from clinic_booking.clock import SystemClock
from clinic_booking.exceptions import (
    AuthorizationError,
    BookingError,
    PolicyViolationError,
    SlotUnavailableError,
    StateTransitionError,
    ValidationError,
)
from clinic_booking.ledger import BookingLedger, duplicate_booking_error
from clinic_booking.logging_config import generate_operation_id, get_logger
from clinic_booking.models import (
    Actor,
    Appointment,
    BlackoutCalendar,
    ClinicPolicy,
    Slot,
    WeeklyTemplate,
    sort_appointments,
)
from clinic_booking.state import AppointmentStatus, CancelledBy, DayOfWeek

logger = get_logger(__name__)

AppointmentRef = Union[Appointment, int]
PatientRef = Union[Actor, int]


def _appointment_id(appointment: AppointmentRef) -> int:
    if isinstance(appointment, Appointment):
        return appointment.id
    if isinstance(appointment, int) and not isinstance(appointment, bool):
        return appointment
    raise ValidationError(
        "An appointment or appointment id is required",
        context={"appointment": repr(appointment)}
    )


def _patient_id(patient: PatientRef) -> int:
    if isinstance(patient, Actor):
        return patient.id
    if isinstance(patient, int) and not isinstance(patient, bool):
        return patient
    raise ValidationError(
        "A patient is required",
        context={"patient": repr(patient)}
    )


def _status_counts(appointments: List[Appointment]) -> Dict[str, int]:
    counts = {status.value: 0 for status in AppointmentStatus}
    for appointment in appointments:
        counts[appointment.status.value] += 1
    return counts


class AppointmentScheduler:
    """
    Entry point for booking and managing clinic appointments.

    Responsibilities:
    - Validate bookings against the template, blackouts and policy
    - Reserve slots atomically through the ledger
    - Enforce the appointment lifecycle and cancellation rules
    - Answer availability and reporting queries

    Pattern: Policy, template and blackouts are plain values; replace them
    on the instance to pick up new configuration.
    """

    def __init__(
        self,
        ledger: BookingLedger,
        policy: ClinicPolicy,
        template: WeeklyTemplate,
        blackouts: Optional[BlackoutCalendar] = None,
        clock=None
    ):
        self.ledger = ledger
        self.policy = policy
        self.template = template
        self.blackouts = blackouts or BlackoutCalendar()
        self.clock = clock or SystemClock()

    # Booking

    def _booking_denial(self, patient_id: int, at: datetime, now: datetime) -> None:
        """Raise the first reason `patient_id` cannot book `at`."""
        since = self.policy.no_show_window_start(now.date())
        no_shows = self.ledger.no_show_count_for_patient(patient_id, since=since)
        if no_shows >= self.policy.no_show_threshold:
            raise PolicyViolationError(
                "Booking is blocked after repeated missed appointments",
                error_code="TOO_MANY_NO_SHOWS",
                context={
                    "patient_id": patient_id,
                    "no_show_count": no_shows,
                    "threshold": self.policy.no_show_threshold,
                }
            )

        reason = self._unavailable_reason(at, now)
        if reason:
            raise SlotUnavailableError(at.date(), at.time(), reason=reason)

    def _unavailable_reason(self, at: datetime, now: datetime) -> Optional[str]:
        if at.date() > self.policy.max_booking_date(now.date()):
            return "beyond_horizon"
        return slot_engine.slot_unavailable_reason(
            at,
            self.template,
            self.blackouts,
            self.policy,
            self.ledger.booked_count_for_slot(at.date(), at.time()),
            now
        )

    @staticmethod
    def _validate_datetime(at: Any) -> datetime:
        if not isinstance(at, datetime):
            raise ValidationError(
                "Appointment date and time are required",
                context={"at": repr(at)}
            )
        if at.tzinfo is not None:
            raise ValidationError(
                "Appointment time must be naive clinic-local time",
                context={"at": at.isoformat()}
            )
        return at

    def book(self, patient: PatientRef, at: datetime, notes: Optional[str] = None) -> Appointment:
        """
        Book a pending appointment for `patient` at `at`.

        Args:
            patient: Patient actor or patient id
            at: Naive clinic-local slot start
            notes: Optional patient notes

        Returns:
            The new appointment in pending status

        Raises:
            ValidationError: Missing or malformed patient/datetime
            PolicyViolationError: TOO_MANY_NO_SHOWS or DUPLICATE_BOOKING
            SlotUnavailableError: Slot cannot be booked (see .reason)
        """
        log = logger.bind(operation="book", operation_id=generate_operation_id())
        try:
            patient_id = _patient_id(patient)
            at = self._validate_datetime(at)
            now = self.clock.now()

            self._booking_denial(patient_id, at, now)
            appointment = self.ledger.reserve(
                patient_id,
                at.date(),
                at.time(),
                self.policy.max_patients_per_slot,
                notes,
                now
            )
        except BookingError as e:
            log.warning("booking_rejected", error_code=e.error_code, **e.context)
            raise

        log.info(
            "appointment_booked",
            appointment_id=appointment.id,
            patient_id=patient_id,
            starts_at=appointment.starts_at.isoformat()
        )
        return appointment

    def can_book(self, patient: PatientRef, at: datetime) -> Dict[str, Any]:
        """
        Non-throwing booking pre-check.

        Returns:
            {"can_book": bool, "reason": str | None, "error_code": str | None}
        """
        try:
            patient_id = _patient_id(patient)
            at = self._validate_datetime(at)
            self._booking_denial(patient_id, at, self.clock.now())
            if self.ledger.has_active_booking(patient_id, at.date(), at.time()):
                raise duplicate_booking_error(patient_id, at.date(), at.time())
        except BookingError as e:
            return {"can_book": False, "reason": e.message, "error_code": e.error_code}
        return {"can_book": True, "reason": None, "error_code": None}

    # Lifecycle

    def _transition(self, appointment: AppointmentRef, target: AppointmentStatus, **changes) -> Appointment:
        appointment_id = _appointment_id(appointment)
        log = logger.bind(
            operation=target.value,
            operation_id=generate_operation_id(),
            appointment_id=appointment_id
        )
        try:
            updated = self.ledger.transition(appointment_id, target, self.clock.now(), **changes)
        except BookingError as e:
            log.warning("transition_rejected", error_code=e.error_code, **e.context)
            raise

        log.info("appointment_status_changed", status=updated.status.value)
        return updated

    def confirm(self, appointment: AppointmentRef) -> Appointment:
        return self._transition(appointment, AppointmentStatus.CONFIRMED)

    def complete(self, appointment: AppointmentRef, admin_notes: Optional[str] = None) -> Appointment:
        changes = {}
        if admin_notes is not None:
            changes["admin_notes"] = admin_notes
        return self._transition(appointment, AppointmentStatus.COMPLETED, **changes)

    def cancel(
        self,
        appointment: AppointmentRef,
        reason: Optional[str] = None,
        cancelled_by: CancelledBy = CancelledBy.ADMIN
    ) -> Appointment:
        """Cancel without ownership or window checks. Releases the slot."""
        try:
            cancelled_by = CancelledBy(cancelled_by)
        except ValueError:
            raise ValidationError(
                f"Unknown canceller: {cancelled_by}",
                context={"cancelled_by": str(cancelled_by)}
            )
        return self._transition(
            appointment,
            AppointmentStatus.CANCELLED,
            cancellation_reason=reason,
            cancelled_by=cancelled_by
        )

    def mark_no_show(self, appointment: AppointmentRef) -> Appointment:
        return self._transition(appointment, AppointmentStatus.NO_SHOW)

    # Cancellation policy

    def _cancel_denial(self, appointment: Appointment, actor: Actor, now: datetime) -> Optional[BookingError]:
        if not actor.is_staff and not actor.owns(appointment):
            return AuthorizationError(
                "You can only cancel your own appointments",
                context={"appointment_id": appointment.id, "actor_id": actor.id}
            )

        if appointment.is_final:
            return StateTransitionError(
                appointment.id,
                appointment.status,
                AppointmentStatus.CANCELLED
            )

        if appointment.starts_at <= now:
            return PolicyViolationError(
                "Past appointments cannot be cancelled",
                error_code="APPOINTMENT_IN_PAST",
                context={"appointment_id": appointment.id}
            )

        # Staff are exempt from the cancellation window
        lead_time = appointment.starts_at - now
        if not actor.is_staff and lead_time < timedelta(hours=self.policy.cancellation_hours):
            return PolicyViolationError(
                f"Appointments must be cancelled at least "
                f"{self.policy.cancellation_hours} hours in advance",
                error_code="CANCELLATION_WINDOW_CLOSED",
                context={
                    "appointment_id": appointment.id,
                    "deadline": self.policy.cancellation_deadline(appointment.starts_at).isoformat(),
                }
            )
        return None

    def can_cancel(self, appointment: AppointmentRef, actor: Actor) -> Dict[str, Any]:
        """
        Whether `actor` may cancel the appointment right now.

        Returns:
            {"can_cancel": bool, "reason": str | None}
        """
        current = self.ledger.get(_appointment_id(appointment))
        denial = self._cancel_denial(current, actor, self.clock.now())
        if denial:
            return {"can_cancel": False, "reason": denial.message}
        return {"can_cancel": True, "reason": None}

    def cancel_for(self, appointment: AppointmentRef, actor: Actor, reason: Optional[str] = None) -> Appointment:
        """
        Cancel on behalf of `actor`, enforcing ownership and the window.

        Raises:
            AuthorizationError: Patient does not own the appointment
            StateTransitionError: Appointment already in a final status
            PolicyViolationError: CANCELLATION_WINDOW_CLOSED or APPOINTMENT_IN_PAST
        """
        current = self.ledger.get(_appointment_id(appointment))
        denial = self._cancel_denial(current, actor, self.clock.now())
        if denial:
            logger.warning(
                "cancellation_rejected",
                appointment_id=current.id,
                actor_id=actor.id,
                error_code=denial.error_code
            )
            raise denial
        return self.cancel(current, reason=reason, cancelled_by=actor.cancelled_by())

    # Edits

    def update_notes(self, appointment: AppointmentRef, admin_notes: Optional[str]) -> Appointment:
        updated = self.ledger.update_fields(_appointment_id(appointment), admin_notes=admin_notes)
        logger.info("appointment_notes_updated", appointment_id=updated.id)
        return updated

    def delete(self, appointment: AppointmentRef) -> Appointment:
        deleted = self.ledger.tombstone(_appointment_id(appointment), self.clock.now())
        logger.info("appointment_deleted", appointment_id=deleted.id)
        return deleted

    # Queries

    def get(self, appointment_id: int) -> Appointment:
        return self.ledger.get(appointment_id)

    def patient_appointments(self, patient_id: int, status=None) -> List[Appointment]:
        """All of a patient's appointments, newest first."""
        found = self.ledger.find(patient_id=patient_id, status=status)
        return sort_appointments(found, newest_first=True)

    def upcoming_for_patient(self, patient_id: int) -> List[Appointment]:
        return self.ledger.find(
            patient_id=patient_id,
            from_date=self.clock.today(),
            status=AppointmentStatus.active_statuses()
        )

    def appointments_for_date(self, on: date) -> List[Appointment]:
        return self.ledger.find(on=on)

    def today_appointments(self) -> List[Appointment]:
        return self.appointments_for_date(self.clock.today())

    def upcoming_appointments(self, days: int = 7) -> List[Appointment]:
        """Active appointments from today through today + days."""
        today = self.clock.today()
        return self.ledger.find(
            from_date=today,
            to_date=today + timedelta(days=days),
            status=AppointmentStatus.active_statuses()
        )

    def statistics(self, from_date: Optional[date] = None, to_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Appointment counts for dashboards.

        total and by_status honour the optional date range; today,
        this_week (Sunday-Saturday) and this_month always cover the
        current period.
        """
        in_range = self.ledger.find(from_date=from_date, to_date=to_date)

        today = self.clock.today()
        week_start = today - timedelta(days=int(DayOfWeek.from_date(today)))
        week_end = week_start + timedelta(days=6)
        month_start = today.replace(day=1)
        next_month = (month_start + timedelta(days=32)).replace(day=1)
        month_end = next_month - timedelta(days=1)

        today_counts = _status_counts(self.ledger.find(on=today))

        return {
            "total": len(in_range),
            "by_status": _status_counts(in_range),
            "today": {
                "total": sum(today_counts.values()),
                "pending": today_counts[AppointmentStatus.PENDING.value],
                "confirmed": today_counts[AppointmentStatus.CONFIRMED.value],
                "completed": today_counts[AppointmentStatus.COMPLETED.value],
            },
            "this_week": len(self.ledger.find(from_date=week_start, to_date=week_end)),
            "this_month": len(self.ledger.find(from_date=month_start, to_date=month_end)),
        }

    def daily_statistics(self, from_date: date, to_date: date) -> List[Dict[str, Any]]:
        """One zero-filled row per date in [from_date, to_date]."""
        if from_date > to_date:
            raise ValidationError(
                "from_date must be on or before to_date",
                context={"from_date": from_date.isoformat(), "to_date": to_date.isoformat()}
            )

        by_date: Dict[date, List[Appointment]] = {}
        for appointment in self.ledger.find(from_date=from_date, to_date=to_date):
            by_date.setdefault(appointment.appointment_date, []).append(appointment)

        rows = []
        current = from_date
        while current <= to_date:
            counts = _status_counts(by_date.get(current, []))
            rows.append({
                "date": current.isoformat(),
                "day_name": DayOfWeek.from_date(current).label(),
                "total": sum(counts.values()),
                "completed": counts[AppointmentStatus.COMPLETED.value],
                "cancelled": counts[AppointmentStatus.CANCELLED.value],
                "no_show": counts[AppointmentStatus.NO_SHOW.value],
            })
            current += timedelta(days=1)
        return rows

    # Availability

    def slots_for_date(self, on: date) -> List[Slot]:
        return slot_engine.slots_for_date(
            on,
            self.template,
            self.blackouts,
            self.policy,
            self.ledger.booked_counts_for_date(on),
            self.clock.now()
        )

    def is_slot_available(self, at: datetime) -> bool:
        """Live availability of `at`, including the booking horizon."""
        at = self._validate_datetime(at)
        return self._unavailable_reason(at, self.clock.now()) is None

    def _horizon(self, days: Optional[int]) -> int:
        # Callers may narrow the booking window, never widen it
        if days is None:
            return self.policy.advance_booking_days
        return min(days, self.policy.advance_booking_days)

    def available_dates(self, days: Optional[int] = None) -> List[date]:
        horizon = self._horizon(days)
        return slot_engine.available_dates(self.clock.today(), horizon, self.template, self.blackouts)

    def next_available_slot(self) -> Optional[Slot]:
        now = self.clock.now()
        return slot_engine.next_available_slot(
            now.date(),
            self.template,
            self.blackouts,
            self.policy,
            self.ledger.booked_counts_for_date,
            now
        )

    def slots_summary(self, days: Optional[int] = None) -> Dict[str, Any]:
        now = self.clock.now()
        horizon = self._horizon(days)
        return slot_engine.summary(
            now.date(),
            horizon,
            self.template,
            self.blackouts,
            self.policy,
            self.ledger.booked_counts_for_date,
            now
        )
