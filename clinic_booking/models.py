"""
Domain models for the clinic booking core.

Supports:
- Weekly working hours (one entry per weekday, optional break)
- Blackout (vacation) date ranges
- Clinic-wide booking policy
- Appointment records and the actors touching them
- Bookable slots
"""
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field, validator

from clinic_booking.state import (
    ActorRole,
    AppointmentStatus,
    CancelledBy,
    DayOfWeek,
)


def minutes_of(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


class ScheduleEntry(BaseModel):
    """Working hours for one weekday."""
    weekday: DayOfWeek = Field(..., description="0 = Sunday ... 6 = Saturday")
    start_time: time = Field(..., description="First minute of the working day")
    end_time: time = Field(..., description="End of the working day")
    is_active: bool = Field(default=True, description="Whether the clinic works this day")
    break_start: Optional[time] = Field(default=None, description="Start of the break")
    break_end: Optional[time] = Field(default=None, description="End of the break")

    @validator("end_time")
    def end_after_start(cls, v, values):
        start = values.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v

    @validator("break_end", always=True)
    def break_inside_working_hours(cls, v, values):
        """Break is all-or-nothing and must sit inside the working day."""
        break_start = values.get("break_start")
        if (break_start is None) != (v is None):
            raise ValueError("break_start and break_end must be set together")
        if v is None:
            return v

        if v <= break_start:
            raise ValueError("break_end must be after break_start")

        start = values.get("start_time")
        end = values.get("end_time")
        if start is not None and break_start < start:
            raise ValueError("break must start within working hours")
        if end is not None and v > end:
            raise ValueError("break must end within working hours")
        return v

    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None

    class Config:
        json_schema_extra = {
            "example": {
                "weekday": 0,
                "start_time": "09:00",
                "end_time": "17:00",
                "is_active": True,
                "break_start": "13:00",
                "break_end": "14:00"
            }
        }


class WeeklyTemplate(BaseModel):
    """Recurring Sunday-Saturday working hours."""
    entries: List[ScheduleEntry] = Field(
        default_factory=list,
        max_length=7,
        description="At most one entry per weekday"
    )

    @validator("entries")
    def one_entry_per_weekday(cls, v):
        seen = set()
        for entry in v:
            if entry.weekday in seen:
                raise ValueError(
                    f"Duplicate schedule for {DayOfWeek(entry.weekday).label()}"
                )
            seen.add(entry.weekday)
        return v

    def entry_for(self, weekday: DayOfWeek) -> Optional[ScheduleEntry]:
        return next((e for e in self.entries if e.weekday == weekday), None)

    def active_entry_for(self, on: date) -> Optional[ScheduleEntry]:
        """Active schedule entry covering the weekday of `on`, if any."""
        entry = self.entry_for(DayOfWeek.from_date(on))
        if entry is None or not entry.is_active:
            return None
        return entry

    def working_days(self) -> List[DayOfWeek]:
        return sorted(DayOfWeek(e.weekday) for e in self.entries if e.is_active)


class BlackoutRange(BaseModel):
    """Inclusive date range with no bookable capacity (vacation)."""
    start_date: date
    end_date: date
    title: Optional[str] = Field(default=None, max_length=200)
    reason: Optional[str] = Field(default=None, max_length=500)

    @validator("end_date")
    def end_not_before_start(cls, v, values):
        start = values.get("start_date")
        if start is not None and v < start:
            raise ValueError("end_date must be on or after start_date")
        return v

    def includes(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start

    @property
    def days_count(self) -> int:
        return (self.end_date - self.start_date).days + 1


class BlackoutCalendar(BaseModel):
    """All blackout ranges. Ranges may overlap."""
    ranges: List[BlackoutRange] = Field(default_factory=list)

    def includes(self, on: date) -> bool:
        return any(r.includes(on) for r in self.ranges)

    def ranges_overlapping(self, start: date, end: date) -> List[BlackoutRange]:
        return [r for r in self.ranges if r.overlaps(start, end)]

    def dates_between(self, start: date, end: date) -> Set[date]:
        """Every blacked-out date in [start, end], for batch lookups."""
        blocked = set()
        for blackout in self.ranges_overlapping(start, end):
            current = max(blackout.start_date, start)
            last = min(blackout.end_date, end)
            while current <= last:
                blocked.add(current)
                current += timedelta(days=1)
        return blocked


class ClinicPolicy(BaseModel):
    """Immutable snapshot of clinic-wide booking configuration."""
    slot_duration_minutes: int = Field(default=30, gt=0, le=480, description="Slot length in minutes")
    max_patients_per_slot: int = Field(default=1, ge=1, description="Capacity of each slot")
    advance_booking_days: int = Field(default=30, ge=0, description="Booking horizon in days")
    cancellation_hours: int = Field(default=24, ge=0, description="Patient cancellation lead time")
    no_show_threshold: int = Field(default=3, ge=1, description="No-shows that block booking")
    no_show_lookback_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Only count no-shows this recent (None = lifetime)"
    )

    def max_booking_date(self, today: date) -> date:
        return today + timedelta(days=self.advance_booking_days)

    def cancellation_deadline(self, starts_at: datetime) -> datetime:
        return starts_at - timedelta(hours=self.cancellation_hours)

    def no_show_window_start(self, today: date) -> Optional[date]:
        if self.no_show_lookback_days is None:
            return None
        return today - timedelta(days=self.no_show_lookback_days)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "slot_duration_minutes": 30,
                "max_patients_per_slot": 1,
                "advance_booking_days": 30,
                "cancellation_hours": 24,
                "no_show_threshold": 3,
                "no_show_lookback_days": None
            }
        }


class Appointment(BaseModel):
    """A booked appointment. Owned by the booking ledger once created."""
    id: int
    patient_id: int
    appointment_date: date
    appointment_time: time
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.appointment_date, self.appointment_time)

    @property
    def is_active(self) -> bool:
        return self.status.is_active()

    @property
    def is_final(self) -> bool:
        return self.status.is_final()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def occupies_slot(self) -> bool:
        return not self.is_deleted and self.status.holds_capacity()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation for serialization/notification layers."""
        data = self.model_dump(mode="json")
        data["appointment_time"] = self.appointment_time.strftime("%H:%M")
        data["datetime"] = self.starts_at.isoformat()
        data["status_label"] = self.status.label()
        data["day_name"] = DayOfWeek.from_date(self.appointment_date).label()
        return data


class Actor(BaseModel):
    """Person acting on an appointment (patient or staff)."""
    id: int
    role: ActorRole = ActorRole.PATIENT

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff()

    @property
    def is_patient(self) -> bool:
        return self.role == ActorRole.PATIENT

    def owns(self, appointment: Appointment) -> bool:
        return appointment.patient_id == self.id

    def cancelled_by(self) -> CancelledBy:
        return CancelledBy.ADMIN if self.is_staff else CancelledBy.PATIENT


class Slot(BaseModel):
    """A bookable start time on a given date."""
    slot_date: date
    slot_time: time
    starts_at: datetime
    is_available: bool
    booked_count: int = 0
    capacity_remaining: int = 0

    class Config:
        frozen = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.slot_date.isoformat(),
            "day_name": DayOfWeek.from_date(self.slot_date).label(),
            "time": self.slot_time.strftime("%H:%M"),
            "datetime": self.starts_at.isoformat(),
            "is_available": self.is_available,
            "booked_count": self.booked_count,
            "capacity_remaining": self.capacity_remaining,
        }


def sort_appointments(
    appointments: Iterable[Appointment],
    newest_first: bool = False
) -> List[Appointment]:
    return sorted(
        appointments,
        key=lambda a: (a.appointment_date, a.appointment_time, a.id),
        reverse=newest_first
    )
