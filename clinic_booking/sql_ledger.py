"""Booking ledger backed by SQLAlchemy."""
from datetime import date, time
from enum import Enum
from typing import Dict

from sqlalchemy import create_engine, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as SQLSession, sessionmaker

from clinic_booking.database_models import AppointmentRecord, Base, SlotLock
from clinic_booking.exceptions import NotFoundError, SlotUnavailableError, StateTransitionError
from clinic_booking.ledger import (
    EDITABLE_FIELDS,
    TRANSITION_FIELDS,
    TRANSITION_TIMESTAMPS,
    BookingLedger,
    check_fields,
    duplicate_booking_error,
    normalize_status_filter,
)
from clinic_booking.state import AppointmentStatus, validate_transition


def _column_value(value):
    return value.value if isinstance(value, Enum) else value


class SqlAlchemyBookingLedger(BookingLedger):
    """
    Ledger persisting appointments through SQLAlchemy.

    Responsibilities:
    - Serialize reservations per slot with a row lock on slot_locks
    - Recheck capacity after insert, before commit
    - Lock the appointment row for every status transition

    Pattern: Thin wrapper around SQLAlchemy, one session per call.
    """

    def __init__(self, database_url: str, **engine_kwargs):
        """
        Initialize ledger with database connection.

        Args:
            database_url: SQLAlchemy connection string
            **engine_kwargs: Extra create_engine arguments (e.g. poolclass)
        """
        engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(database_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    # Query helpers

    def _lock_slot(self, db: SQLSession, on: date, at: time) -> SlotLock:
        """Get-or-create the slot's lock row and hold it FOR UPDATE."""
        query = db.query(SlotLock).filter(
            SlotLock.slot_date == on,
            SlotLock.slot_time == at
        )
        lock = query.with_for_update().first()
        if lock is not None:
            return lock

        try:
            with db.begin_nested():
                db.add(SlotLock(slot_date=on, slot_time=at))
        except IntegrityError:
            # Created by a concurrent reservation; lock that row below
            pass
        return query.with_for_update().one()

    def _live(self, db: SQLSession):
        return db.query(AppointmentRecord).filter(AppointmentRecord.deleted_at.is_(None))

    def _capacity_holders(self, db: SQLSession):
        return self._live(db).filter(
            AppointmentRecord.status != AppointmentStatus.CANCELLED.value
        )

    def _count_slot(self, db: SQLSession, on: date, at: time) -> int:
        return self._capacity_holders(db).filter(
            AppointmentRecord.appointment_date == on,
            AppointmentRecord.appointment_time == at
        ).count()

    def _has_active(self, db: SQLSession, patient_id: int, on: date, at: time) -> bool:
        active = [s.value for s in AppointmentStatus.active_statuses()]
        return self._live(db).filter(
            AppointmentRecord.patient_id == patient_id,
            AppointmentRecord.appointment_date == on,
            AppointmentRecord.appointment_time == at,
            AppointmentRecord.status.in_(active)
        ).first() is not None

    def _get_live(self, db: SQLSession, appointment_id: int, for_update: bool = False) -> AppointmentRecord:
        query = self._live(db).filter(AppointmentRecord.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        record = query.first()
        if record is None:
            raise NotFoundError(
                f"Appointment {appointment_id} not found",
                context={"appointment_id": appointment_id}
            )
        return record

    # Mutations

    def reserve(self, patient_id, on, at, capacity, notes, now):
        with self.SessionLocal() as db:
            self._lock_slot(db, on, at)

            if self._count_slot(db, on, at) >= capacity:
                raise SlotUnavailableError(on, at, reason="slot_full")
            if self._has_active(db, patient_id, on, at):
                raise duplicate_booking_error(patient_id, on, at)

            record = AppointmentRecord(
                patient_id=patient_id,
                appointment_date=on,
                appointment_time=at,
                status=AppointmentStatus.PENDING.value,
                notes=notes,
                created_at=now,
            )
            db.add(record)
            db.flush()

            # Insert-then-recheck
            if self._count_slot(db, on, at) > capacity:
                db.rollback()
                raise SlotUnavailableError(on, at, reason="slot_full")

            db.commit()
            return record.to_model()

    def transition(self, appointment_id, target, now, **changes):
        check_fields(changes, TRANSITION_FIELDS.get(target, set()))
        with self.SessionLocal() as db:
            record = self._get_live(db, appointment_id, for_update=True)
            current = AppointmentStatus(record.status)
            if not validate_transition(current, target):
                raise StateTransitionError(appointment_id, current, target)

            values = {field: _column_value(value) for field, value in changes.items()}
            values["status"] = _column_value(target)
            stamp = TRANSITION_TIMESTAMPS.get(target)
            if stamp:
                values[stamp] = now

            # Only applies if the status is still the one validated above
            updated = self._live(db).filter(
                AppointmentRecord.id == appointment_id,
                AppointmentRecord.status == record.status
            ).update(values, synchronize_session=False)
            if not updated:
                db.rollback()
                fresh = self._get_live(db, appointment_id)
                raise StateTransitionError(appointment_id, AppointmentStatus(fresh.status), target)

            db.commit()
            db.refresh(record)
            return record.to_model()

    def update_fields(self, appointment_id, **changes):
        check_fields(changes, EDITABLE_FIELDS)
        with self.SessionLocal() as db:
            record = self._get_live(db, appointment_id, for_update=True)
            for field, value in changes.items():
                setattr(record, field, value)
            db.commit()
            return record.to_model()

    def tombstone(self, appointment_id, now):
        with self.SessionLocal() as db:
            record = self._get_live(db, appointment_id, for_update=True)
            record.deleted_at = now
            db.commit()
            return record.to_model()

    # Reads

    def get(self, appointment_id):
        with self.SessionLocal() as db:
            return self._get_live(db, appointment_id).to_model()

    def booked_count_for_slot(self, on, at):
        with self.SessionLocal() as db:
            return self._count_slot(db, on, at)

    def booked_counts_for_date(self, on) -> Dict[time, int]:
        with self.SessionLocal() as db:
            rows = db.query(
                AppointmentRecord.appointment_time,
                func.count(AppointmentRecord.id)
            ).filter(
                AppointmentRecord.deleted_at.is_(None),
                AppointmentRecord.status != AppointmentStatus.CANCELLED.value,
                AppointmentRecord.appointment_date == on
            ).group_by(AppointmentRecord.appointment_time).all()
        return {slot_time: count for slot_time, count in rows}

    def no_show_count_for_patient(self, patient_id, since=None):
        with self.SessionLocal() as db:
            query = self._live(db).filter(
                AppointmentRecord.patient_id == patient_id,
                AppointmentRecord.status == AppointmentStatus.NO_SHOW.value
            )
            if since is not None:
                query = query.filter(AppointmentRecord.appointment_date >= since)
            return query.count()

    def has_active_booking(self, patient_id, on, at):
        with self.SessionLocal() as db:
            return self._has_active(db, patient_id, on, at)

    def find(self, patient_id=None, on=None, from_date=None, to_date=None, status=None):
        statuses = normalize_status_filter(status)
        with self.SessionLocal() as db:
            query = self._live(db)
            if patient_id is not None:
                query = query.filter(AppointmentRecord.patient_id == patient_id)
            if on is not None:
                query = query.filter(AppointmentRecord.appointment_date == on)
            if from_date is not None:
                query = query.filter(AppointmentRecord.appointment_date >= from_date)
            if to_date is not None:
                query = query.filter(AppointmentRecord.appointment_date <= to_date)
            if statuses is not None:
                query = query.filter(AppointmentRecord.status.in_([s.value for s in statuses]))

            records = query.order_by(
                AppointmentRecord.appointment_date,
                AppointmentRecord.appointment_time,
                AppointmentRecord.id
            ).all()
            return [r.to_model() for r in records]
