"""Clinic slot availability and appointment booking core."""
from clinic_booking.clock import FixedClock, SystemClock
from clinic_booking.exceptions import (
    AuthorizationError,
    BookingError,
    NotFoundError,
    PolicyViolationError,
    SlotUnavailableError,
    StateTransitionError,
    ValidationError,
)
from clinic_booking.ledger import BookingLedger, InMemoryBookingLedger
from clinic_booking.models import (
    Actor,
    Appointment,
    BlackoutCalendar,
    BlackoutRange,
    ClinicPolicy,
    ScheduleEntry,
    Slot,
    WeeklyTemplate,
)
from clinic_booking.scheduler import AppointmentScheduler
from clinic_booking.state import ActorRole, AppointmentStatus, CancelledBy, DayOfWeek

__version__ = "1.0.0"
