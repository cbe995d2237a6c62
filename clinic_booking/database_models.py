"""SQLAlchemy table models for the SQL booking ledger."""
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from clinic_booking.models import Appointment
from clinic_booking.state import AppointmentStatus, CancelledBy

Base = declarative_base()


class AppointmentRecord(Base):
    """Appointments table. Rows are tombstoned, never deleted."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, nullable=False, index=True)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # patient | admin
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        Index("ix_appointments_slot", "appointment_date", "appointment_time"),
    )

    def to_model(self) -> Appointment:
        return Appointment(
            id=self.id,
            patient_id=self.patient_id,
            appointment_date=self.appointment_date,
            appointment_time=self.appointment_time,
            status=AppointmentStatus(self.status),
            notes=self.notes,
            admin_notes=self.admin_notes,
            cancellation_reason=self.cancellation_reason,
            cancelled_by=CancelledBy(self.cancelled_by) if self.cancelled_by else None,
            confirmed_at=self.confirmed_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            created_at=self.created_at,
            deleted_at=self.deleted_at,
        )

    def __repr__(self):
        return (
            f"<AppointmentRecord(id={self.id}, date={self.appointment_date}, "
            f"time={self.appointment_time}, status={self.status})>"
        )


class SlotLock(Base):
    """One row per (date, time) that has ever been booked; serializes reservations."""
    __tablename__ = "slot_locks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slot_date = Column(Date, nullable=False)
    slot_time = Column(Time, nullable=False)

    __table_args__ = (
        UniqueConstraint("slot_date", "slot_time", name="uq_slot_locks_slot"),
    )

    def __repr__(self):
        return f"<SlotLock(date={self.slot_date}, time={self.slot_time})>"
