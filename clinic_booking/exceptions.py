"""Typed errors raised by the booking core.

Every failing operation raises exactly one of these. Each carries a stable
error_code and a context dict so outer layers can map it to a response.
"""
from datetime import date, time
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for booking core errors."""

    error_code = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ValidationError(BookingError):
    """Raised when input to a core call is missing or malformed."""

    error_code = "VALIDATION_ERROR"


class SlotUnavailableError(BookingError):
    """Raised when a date/time cannot be booked."""

    error_code = "SLOT_NOT_AVAILABLE"

    MESSAGES = {
        "slot_full": "This time slot is already fully booked",
        "vacation": "The clinic is closed for vacation on this date",
        "closed_day": "The clinic does not work on this day",
        "outside_hours": "This time is outside the clinic's working hours",
        "past_time": "This time slot is in the past",
        "beyond_horizon": "This date is beyond the advance booking window",
    }

    def __init__(self, on: date, at: time, reason: str = "slot_full"):
        message = self.MESSAGES.get(reason, "This time slot is not available")
        super().__init__(
            message,
            context={
                "date": on.isoformat(),
                "time": at.strftime("%H:%M"),
                "reason": reason,
            }
        )
        self.reason = reason


class PolicyViolationError(BookingError):
    """Raised when clinic policy forbids the request."""

    error_code = "POLICY_VIOLATION"


class StateTransitionError(BookingError):
    """Raised when a lifecycle transition is illegal from the current status."""

    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, appointment_id: Any, current: Any, target: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot move appointment {appointment_id} from "
            f"'{current_value}' to '{target_value}'",
            context={
                "appointment_id": appointment_id,
                "current_status": current_value,
                "target_status": target_value,
            }
        )
        self.current = current
        self.target = target


class NotFoundError(BookingError):
    """Raised when an appointment does not exist or has been deleted."""

    error_code = "NOT_FOUND"


class AuthorizationError(BookingError):
    """Raised when the acting user may not touch the appointment."""

    error_code = "NOT_AUTHORIZED"
