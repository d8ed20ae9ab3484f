"""Capacity validation and availability for the service bays."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.exceptions import InvalidInputError
from src.modules.appointments.models import Appointment
from src.modules.schedule.schemas import BookingValidation, CapacityCheck, TimeSlot
from src.modules.schedule.slots import (
    add_minutes_to_time,
    calculate_multi_vehicle_duration,
    fits_before_closing,
    format_time_display,
    generate_time_slots,
    is_beyond_booking_window,
    is_blocked_date,
    is_past_datetime,
    meets_minimum_notice,
    overlaps_lunch_break,
    parse_date,
    time_to_minutes,
)
from src.shared.enums import AppointmentStatus

logger = logging.getLogger(__name__)

CAPACITY_FULL = "Selected time slot is fully booked"
CAPACITY_LAST_BAY = "Only 1 slot remaining at this time"
VEHICLE_CONFLICT = "One or more vehicles already have an appointment at this time"

# Members of a multi-vehicle group share one bay back-to-back, so a bay is
# identified by the group id when there is one.
_bay_key = func.coalesce(Appointment.group_id, Appointment.appointment_id)


def validate_appointment_time(
    day: date | str,
    start_time: str,
    duration: int,
    config: SchedulingConfig,
    now: datetime,
) -> list[str]:
    """Calendar and business-hours checks, returned as error messages."""
    target = parse_date(day)
    time_to_minutes(start_time)
    if duration <= 0:
        raise InvalidInputError(f"Duration must be a positive number of minutes, got {duration!r}")

    errors: list[str] = []
    if is_past_datetime(target, start_time, now, config):
        errors.append("Cannot book appointments in the past")
    elif not meets_minimum_notice(target, start_time, now, config):
        errors.append(f"Appointments must be booked at least {config.minimum_notice_hours} hours in advance")
    if is_beyond_booking_window(target, now, config):
        errors.append(f"Cannot book more than {config.advance_booking_days} days in advance")
    if target.weekday() not in config.operating_days:
        errors.append("Selected date is not a working day")
    if is_blocked_date(target, config):
        errors.append("Selected date is not available (holiday or closure)")
    if time_to_minutes(start_time) < time_to_minutes(config.open_time):
        errors.append(f"The shop opens at {config.open_time}")
    if overlaps_lunch_break(start_time, duration, config):
        errors.append("Selected time overlaps with lunch break")
    if not fits_before_closing(start_time, duration, config):
        errors.append("Service duration extends beyond business hours")
    return errors


async def check_slot_capacity(
    db: AsyncSession,
    day: date | str,
    start_time: str,
    duration: int,
    config: SchedulingConfig,
    exclude_appointment_id: str | None = None,
) -> CapacityCheck:
    """Count live bookings overlapping ``[start, start + duration)`` on ``day``.

    Overlap is half-open: a booking ending at 10:00 does not collide with one
    starting at 10:00. Admits iff the count is below ``config.capacity``.
    """
    target = parse_date(day)
    end_time = add_minutes_to_time(start_time, duration)
    stmt = select(func.count(func.distinct(_bay_key))).where(
        Appointment.appointment_date == target,
        Appointment.status != AppointmentStatus.CANCELLED,
        Appointment.appointment_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_appointment_id:
        stmt = stmt.where(Appointment.appointment_id != exclude_appointment_id)
    used = (await db.execute(stmt)).scalar_one()

    total = config.capacity
    remaining = max(0, total - used)
    check = CapacityCheck(
        is_available=used < total,
        capacity_used=used,
        capacity_total=total,
        capacity_remaining=remaining,
    )
    if not check.is_available:
        check.errors.append(CAPACITY_FULL)
    elif remaining == 1:
        check.warnings.append(CAPACITY_LAST_BAY)
    return check


async def find_vehicle_conflicts(
    db: AsyncSession,
    vehicle_ids: Iterable[str],
    day: date | str,
    start_time: str,
    duration: int,
    exclude_appointment_ids: Sequence[str] = (),
) -> list[str]:
    """Vehicles that already hold a live booking overlapping the window."""
    ids = list(vehicle_ids)
    if not ids:
        return []
    end_time = add_minutes_to_time(start_time, duration)
    stmt = select(Appointment.vehicle_id).where(
        Appointment.vehicle_id.in_(ids),
        Appointment.appointment_date == parse_date(day),
        Appointment.status.not_in([AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED]),
        Appointment.appointment_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_appointment_ids:
        stmt = stmt.where(Appointment.appointment_id.not_in(list(exclude_appointment_ids)))
    result = await db.execute(stmt)
    return sorted(set(result.scalars().all()))


async def validate_booking(
    db: AsyncSession,
    day: date | str,
    start_time: str,
    duration: int,
    config: SchedulingConfig,
    now: datetime,
    vehicle_ids: Sequence[str] = (),
    exclude_appointment_id: str | None = None,
) -> BookingValidation:
    """Full admission check. Never raises; every failure is reported as data."""
    try:
        errors = validate_appointment_time(day, start_time, duration, config, now)
    except InvalidInputError as exc:
        return BookingValidation(is_valid=False, errors=[exc.detail])

    warnings: list[str] = []
    capacity: CapacityCheck | None = None
    if not errors:
        capacity = await check_slot_capacity(
            db, day, start_time, duration, config, exclude_appointment_id=exclude_appointment_id
        )
        errors.extend(capacity.errors)
        warnings.extend(capacity.warnings)

    excluded = [exclude_appointment_id] if exclude_appointment_id else []
    if vehicle_ids and not errors:
        conflicts = await find_vehicle_conflicts(db, vehicle_ids, day, start_time, duration, excluded)
        if conflicts:
            errors.append(VEHICLE_CONFLICT)

    if errors:
        logger.info("Booking rejected for %s %s (%s min): %s", day, start_time, duration, "; ".join(errors))
    return BookingValidation(is_valid=not errors, errors=errors, warnings=warnings, capacity=capacity)


async def query_availability(
    db: AsyncSession,
    day: date | str,
    duration: int,
    vehicle_count: int,
    config: SchedulingConfig,
    now: datetime | None = None,
) -> list[TimeSlot]:
    """Slots for ``day`` with live capacity, sized for ``vehicle_count`` vehicles."""
    target = parse_date(day)
    total_duration = calculate_multi_vehicle_duration(duration, vehicle_count, config)
    windows = generate_time_slots(target, total_duration, config)
    if not windows:
        return []

    result = await db.execute(
        select(_bay_key, Appointment.appointment_time, Appointment.end_time).where(
            Appointment.appointment_date == target,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
    )
    booked = [(bay, time_to_minutes(start), time_to_minutes(end)) for bay, start, end in result.all()]

    slots: list[TimeSlot] = []
    for window in windows:
        start = time_to_minutes(window.start_time)
        end = time_to_minutes(window.end_time)
        used = len({bay for bay, booked_start, booked_end in booked if booked_start < end and booked_end > start})
        bookable = used < config.capacity
        if now is not None and bookable:
            bookable = meets_minimum_notice(target, window.start_time, now, config) and not is_beyond_booking_window(
                target, now, config
            )
        slots.append(
            TimeSlot(
                start_time=window.start_time,
                end_time=window.end_time,
                capacity_total=config.capacity,
                capacity_used=used,
                capacity_remaining=max(0, config.capacity - used),
                is_available=bookable,
                display_time=format_time_display(window.start_time),
            )
        )
    return slots
