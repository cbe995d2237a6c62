"""Booking ledger: the storage capability the scheduler relies on.

The ledger owns every Appointment. Callers only ever receive copies, and
every mutation happens inside one lock (or transaction) scope.
"""
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Union

from clinic_booking.exceptions import (
    NotFoundError,
    PolicyViolationError,
    SlotUnavailableError,
    StateTransitionError,
    ValidationError,
)
from clinic_booking.models import Appointment, sort_appointments
from clinic_booking.state import AppointmentStatus, validate_transition

StatusFilter = Union[AppointmentStatus, Iterable[AppointmentStatus], None]

# Timestamp stamped when an appointment enters the status
TRANSITION_TIMESTAMPS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.COMPLETED: "completed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
}

# Extra fields a transition may set, per target status
TRANSITION_FIELDS = {
    AppointmentStatus.COMPLETED: {"admin_notes"},
    AppointmentStatus.CANCELLED: {"admin_notes", "cancellation_reason", "cancelled_by"},
}
EDITABLE_FIELDS = {"notes", "admin_notes"}


def normalize_status_filter(status: StatusFilter) -> Optional[List[AppointmentStatus]]:
    if status is None:
        return None
    if isinstance(status, (AppointmentStatus, str)):
        status = [status]
    status = list(status)
    try:
        return [AppointmentStatus(s) for s in status]
    except ValueError:
        raise ValidationError(
            f"Unknown status filter: {status}",
            context={"status": [str(s) for s in status]}
        )


def check_fields(changes: Dict, allowed: set) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(
            f"Cannot change field(s): {', '.join(sorted(unknown))}",
            context={"fields": sorted(unknown)}
        )


def duplicate_booking_error(patient_id: int, on: date, at: time) -> PolicyViolationError:
    return PolicyViolationError(
        "You already have an appointment at this time",
        error_code="DUPLICATE_BOOKING",
        context={
            "patient_id": patient_id,
            "date": on.isoformat(),
            "time": at.strftime("%H:%M"),
        }
    )


class BookingLedger(ABC):
    """Storage interface for appointments."""

    @abstractmethod
    def reserve(
        self,
        patient_id: int,
        on: date,
        at: time,
        capacity: int,
        notes: Optional[str],
        now: datetime
    ) -> Appointment:
        """
        Atomically insert a pending appointment if the slot has room.

        Raises:
            SlotUnavailableError: Slot already holds `capacity` appointments
            PolicyViolationError: Patient already holds this slot (DUPLICATE_BOOKING)
        """

    @abstractmethod
    def transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        now: datetime,
        **changes
    ) -> Appointment:
        """
        Move one appointment to `target`, stamping its timestamp.

        Raises:
            NotFoundError: Unknown or deleted appointment
            StateTransitionError: Transition not allowed from current status
        """

    @abstractmethod
    def update_fields(self, appointment_id: int, **changes) -> Appointment:
        """Edit notes/admin_notes without touching status."""

    @abstractmethod
    def tombstone(self, appointment_id: int, now: datetime) -> Appointment:
        """Soft-delete: hide from reads and release capacity."""

    @abstractmethod
    def get(self, appointment_id: int) -> Appointment:
        """Raises NotFoundError when missing or deleted."""

    @abstractmethod
    def booked_count_for_slot(self, on: date, at: time) -> int:
        """Appointments currently holding capacity at (on, at)."""

    @abstractmethod
    def booked_counts_for_date(self, on: date) -> Dict[time, int]:
        """Capacity-holding appointments per start time on `on`."""

    @abstractmethod
    def no_show_count_for_patient(self, patient_id: int, since: Optional[date] = None) -> int:
        """No-shows for the patient, optionally only from `since` onwards."""

    @abstractmethod
    def has_active_booking(self, patient_id: int, on: date, at: time) -> bool:
        """Whether the patient holds a pending/confirmed appointment at (on, at)."""

    @abstractmethod
    def find(
        self,
        patient_id: Optional[int] = None,
        on: Optional[date] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: StatusFilter = None
    ) -> List[Appointment]:
        """Non-deleted appointments matching every given filter, oldest first."""


class InMemoryBookingLedger(BookingLedger):
    """
    Process-local ledger.

    Pattern: dict storage guarded by a single lock.
    Good for: Tests, single-process deployments.
    NOT for: Multiple processes sharing bookings (use SqlAlchemyBookingLedger).
    """

    def __init__(self):
        # {appointment_id: Appointment}
        self.appointments: Dict[int, Appointment] = {}
        self._next_id = 1
        self.lock = threading.Lock()

    def _live(self) -> Iterable[Appointment]:
        return (a for a in self.appointments.values() if not a.is_deleted)

    def _get_live(self, appointment_id: int) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None or appointment.is_deleted:
            raise NotFoundError(
                f"Appointment {appointment_id} not found",
                context={"appointment_id": appointment_id}
            )
        return appointment

    def _count_slot(self, on: date, at: time) -> int:
        return sum(
            1 for a in self._live()
            if a.appointment_date == on and a.appointment_time == at and a.occupies_slot()
        )

    def _has_active(self, patient_id: int, on: date, at: time) -> bool:
        return any(
            a.patient_id == patient_id
            and a.appointment_date == on
            and a.appointment_time == at
            and a.is_active
            for a in self._live()
        )

    def reserve(self, patient_id, on, at, capacity, notes, now):
        with self.lock:
            if self._count_slot(on, at) >= capacity:
                raise SlotUnavailableError(on, at, reason="slot_full")
            if self._has_active(patient_id, on, at):
                raise duplicate_booking_error(patient_id, on, at)

            appointment = Appointment(
                id=self._next_id,
                patient_id=patient_id,
                appointment_date=on,
                appointment_time=at,
                status=AppointmentStatus.PENDING,
                notes=notes,
                created_at=now,
            )
            self.appointments[appointment.id] = appointment
            self._next_id += 1
            return appointment.model_copy()

    def transition(self, appointment_id, target, now, **changes):
        check_fields(changes, TRANSITION_FIELDS.get(target, set()))
        with self.lock:
            appointment = self._get_live(appointment_id)
            if not validate_transition(appointment.status, target):
                raise StateTransitionError(appointment_id, appointment.status, target)

            updates = dict(changes, status=target)
            stamp = TRANSITION_TIMESTAMPS.get(target)
            if stamp:
                updates[stamp] = now

            updated = appointment.model_copy(update=updates)
            self.appointments[appointment_id] = updated
            return updated.model_copy()

    def update_fields(self, appointment_id, **changes):
        check_fields(changes, EDITABLE_FIELDS)
        with self.lock:
            appointment = self._get_live(appointment_id)
            updated = appointment.model_copy(update=changes)
            self.appointments[appointment_id] = updated
            return updated.model_copy()

    def tombstone(self, appointment_id, now):
        with self.lock:
            appointment = self._get_live(appointment_id)
            updated = appointment.model_copy(update={"deleted_at": now})
            self.appointments[appointment_id] = updated
            return updated.model_copy()

    def get(self, appointment_id):
        with self.lock:
            return self._get_live(appointment_id).model_copy()

    def booked_count_for_slot(self, on, at):
        with self.lock:
            return self._count_slot(on, at)

    def booked_counts_for_date(self, on):
        counts: Dict[time, int] = defaultdict(int)
        with self.lock:
            for a in self._live():
                if a.appointment_date == on and a.occupies_slot():
                    counts[a.appointment_time] += 1
        return dict(counts)

    def no_show_count_for_patient(self, patient_id, since=None):
        with self.lock:
            return sum(
                1 for a in self._live()
                if a.patient_id == patient_id
                and a.status == AppointmentStatus.NO_SHOW
                and (since is None or a.appointment_date >= since)
            )

    def has_active_booking(self, patient_id, on, at):
        with self.lock:
            return self._has_active(patient_id, on, at)

    def find(self, patient_id=None, on=None, from_date=None, to_date=None, status=None):
        statuses = normalize_status_filter(status)
        with self.lock:
            matches = [
                a.model_copy() for a in self._live()
                if (patient_id is None or a.patient_id == patient_id)
                and (on is None or a.appointment_date == on)
                and (from_date is None or a.appointment_date >= from_date)
                and (to_date is None or a.appointment_date <= to_date)
                and (statuses is None or a.status in statuses)
            ]
        return sort_appointments(matches)
