"""Slot availability engine.

Pure functions over a weekly template, blackout calendar, clinic policy and
booked counts. "now" is always passed in; nothing here reads the clock or
touches storage.
"""
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from clinic_booking.models import (
    BlackoutCalendar,
    ClinicPolicy,
    ScheduleEntry,
    Slot,
    WeeklyTemplate,
    minutes_of,
    time_from_minutes,
)

BookedCounts = Mapping[time, int]
BookedCountsFor = Callable[[date], BookedCounts]


def is_date_available(
    on: date,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar
) -> bool:
    """True when the clinic works on `on` and no blackout covers it."""
    if blackouts.includes(on):
        return False
    return template.active_entry_for(on) is not None


def generate_slot_times(entry: ScheduleEntry, slot_duration_minutes: int) -> List[time]:
    """
    Generate candidate start times for one working day.

    Steps from start_time by the slot duration while the slot still ends by
    end_time. A slot overlapping the break is skipped and generation resumes
    at break_end.

    Args:
        entry: Working hours for the day
        slot_duration_minutes: Length of each slot

    Returns:
        Ascending list of slot start times

    Example:
        >>> entry = ScheduleEntry(weekday=0, start_time="09:00", end_time="10:00")
        >>> generate_slot_times(entry, 30)
        [datetime.time(9, 0), datetime.time(9, 30)]
    """
    if slot_duration_minutes <= 0:
        raise ValueError("slot_duration_minutes must be positive")

    start = minutes_of(entry.start_time)
    end = minutes_of(entry.end_time)
    break_start = minutes_of(entry.break_start) if entry.has_break() else None
    break_end = minutes_of(entry.break_end) if entry.has_break() else None

    times = []
    current = start
    while current + slot_duration_minutes <= end:
        slot_end = current + slot_duration_minutes

        if break_start is not None and current < break_end and slot_end > break_start:
            current = break_end
            continue

        times.append(time_from_minutes(current))
        current = slot_end

    return times


def _times_for_date(on: date, template: WeeklyTemplate, policy: ClinicPolicy) -> List[time]:
    entry = template.active_entry_for(on)
    if entry is None:
        return []
    return generate_slot_times(entry, policy.slot_duration_minutes)


def slots_for_date(
    on: date,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar,
    policy: ClinicPolicy,
    booked_counts: BookedCounts,
    now: datetime
) -> List[Slot]:
    """
    All slots for `on`, annotated with availability.

    Returns an empty list for past dates, closed days and blackout dates.
    On today's date only times strictly after `now` are returned.
    """
    if on < now.date() or not is_date_available(on, template, blackouts):
        return []

    slots = []
    for slot_time in _times_for_date(on, template, policy):
        starts_at = datetime.combine(on, slot_time)
        if starts_at <= now:
            continue

        booked = booked_counts.get(slot_time, 0)
        slots.append(Slot(
            slot_date=on,
            slot_time=slot_time,
            starts_at=starts_at,
            is_available=booked < policy.max_patients_per_slot,
            booked_count=booked,
            capacity_remaining=max(policy.max_patients_per_slot - booked, 0),
        ))
    return slots


def slot_unavailable_reason(
    at: datetime,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar,
    policy: ClinicPolicy,
    booked_count: int,
    now: datetime
) -> Optional[str]:
    """
    First reason `at` cannot be booked, or None when it can.

    Reasons, in check order: vacation, closed_day, outside_hours,
    past_time, slot_full. The booking horizon is not checked here.
    """
    on = at.date()
    if blackouts.includes(on):
        return "vacation"
    if template.active_entry_for(on) is None:
        return "closed_day"

    slot_time = at.time()
    if slot_time.second or slot_time.microsecond:
        return "outside_hours"
    if slot_time not in _times_for_date(on, template, policy):
        return "outside_hours"

    if at <= now:
        return "past_time"
    if booked_count >= policy.max_patients_per_slot:
        return "slot_full"
    return None


def is_slot_available(
    at: datetime,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar,
    policy: ClinicPolicy,
    booked_count: int,
    now: datetime
) -> bool:
    return slot_unavailable_reason(at, template, blackouts, policy, booked_count, now) is None


def available_dates(
    today: date,
    horizon_days: int,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar
) -> List[date]:
    """Working, non-blacked-out dates in [today, today + horizon_days]."""
    end = today + timedelta(days=horizon_days)
    blocked = blackouts.dates_between(today, end)

    dates = []
    current = today
    while current <= end:
        if current not in blocked and template.active_entry_for(current) is not None:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def next_available_slot(
    today: date,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar,
    policy: ClinicPolicy,
    booked_counts_for: BookedCountsFor,
    now: datetime
) -> Optional[Slot]:
    """First slot with free capacity inside the booking horizon."""
    for on in available_dates(today, policy.advance_booking_days, template, blackouts):
        for slot in slots_for_date(on, template, blackouts, policy, booked_counts_for(on), now):
            if slot.is_available:
                return slot
    return None


def summary(
    today: date,
    horizon_days: int,
    template: WeeklyTemplate,
    blackouts: BlackoutCalendar,
    policy: ClinicPolicy,
    booked_counts_for: BookedCountsFor,
    now: datetime
) -> Dict[str, Any]:
    """
    Availability overview for the next `horizon_days` days.

    Returns:
        Dict with total_days, available_dates, total_slots,
        available_slots and next_available (Slot dict or None)
    """
    dates = available_dates(today, horizon_days, template, blackouts)

    total_slots = 0
    free_slots = 0
    first_free = None
    for on in dates:
        for slot in slots_for_date(on, template, blackouts, policy, booked_counts_for(on), now):
            total_slots += 1
            if slot.is_available:
                free_slots += 1
                if first_free is None:
                    first_free = slot

    return {
        "total_days": horizon_days + 1,
        "available_dates": len(dates),
        "total_slots": total_slots,
        "available_slots": free_slots,
        "next_available": first_free.to_dict() if first_free else None,
    }
