"""Appointment lifecycle states and the transitions between them.

Lifecycle:
- pending -> confirmed -> completed
- pending | confirmed -> cancelled
- confirmed -> no_show

completed, cancelled and no_show are final. Anything not listed in
VALID_TRANSITIONS is illegal.
"""
from datetime import date
from enum import Enum, IntEnum
from typing import Dict, List


class AppointmentStatus(str, Enum):
    """Discrete appointment states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    def label(self) -> str:
        return _STATUS_LABELS[self]

    def color(self) -> str:
        return _STATUS_COLORS[self]

    def is_active(self) -> bool:
        """Pending and confirmed appointments still need staff action."""
        return self in ACTIVE_STATUSES

    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    def holds_capacity(self) -> bool:
        """Every status except cancelled occupies a seat in its slot."""
        return self is not AppointmentStatus.CANCELLED

    @classmethod
    def active_statuses(cls) -> List["AppointmentStatus"]:
        return list(ACTIVE_STATUSES)

    @classmethod
    def final_statuses(cls) -> List["AppointmentStatus"]:
        return list(FINAL_STATUSES)


ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
FINAL_STATUSES = (
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
)

_STATUS_LABELS = {
    AppointmentStatus.PENDING: "Pending",
    AppointmentStatus.CONFIRMED: "Confirmed",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.NO_SHOW: "No Show",
}

_STATUS_COLORS = {
    AppointmentStatus.PENDING: "warning",
    AppointmentStatus.CONFIRMED: "info",
    AppointmentStatus.COMPLETED: "success",
    AppointmentStatus.CANCELLED: "danger",
    AppointmentStatus.NO_SHOW: "secondary",
}


class CancelledBy(str, Enum):
    """Who cancelled an appointment."""
    PATIENT = "patient"
    ADMIN = "admin"

    def label(self) -> str:
        return self.value.title()


class ActorRole(str, Enum):
    """Roles of the people acting on appointments."""
    ADMIN = "admin"
    SECRETARY = "secretary"
    PATIENT = "patient"

    def is_staff(self) -> bool:
        return self in (ActorRole.ADMIN, ActorRole.SECRETARY)

    def label(self) -> str:
        return self.value.title()


class DayOfWeek(IntEnum):
    """Clinic weekday numbering: the week starts on Sunday."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        # date.weekday() is Monday=0 .. Sunday=6
        return cls((value.weekday() + 1) % 7)

    def label(self) -> str:
        return self.name.title()

    def short_label(self) -> str:
        return self.label()[:3]


# State machine transition map
# Pattern: Current status -> [allowed next statuses]
VALID_TRANSITIONS: Dict[AppointmentStatus, List[AppointmentStatus]] = {
    AppointmentStatus.PENDING: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    ],
    # Final states
    AppointmentStatus.COMPLETED: [],
    AppointmentStatus.CANCELLED: [],
    AppointmentStatus.NO_SHOW: [],
}


def validate_transition(
    current: AppointmentStatus,
    intended: AppointmentStatus
) -> bool:
    """
    Validate a status transition.

    Args:
        current: Current appointment status
        intended: Requested next status

    Returns:
        True if transition is valid

    Example:
        >>> validate_transition(
        ...     AppointmentStatus.PENDING,
        ...     AppointmentStatus.CONFIRMED
        ... )
        True
    """
    allowed = VALID_TRANSITIONS.get(current, [])
    return intended in allowed
