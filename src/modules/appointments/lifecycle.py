"""Appointment state machine.

The ``decide`` helpers here are pure: they inspect values and either return a
verdict or raise ``InvalidTransitionError``. ``apply_transition`` mutates an
``Appointment`` in memory but never touches the session; persistence and
notifications belong to ``AppointmentService``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from src.core.config import CancellationPolicy, SchedulingConfig
from src.core.exceptions import InvalidTransitionError
from src.modules.appointments.models import Appointment
from src.modules.schedule.slots import add_minutes_to_time, appointment_start
from src.shared.clock import isoformat_utc
from src.shared.enums import AppointmentStatus

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.IN_SERVICE, AppointmentStatus.CANCELLED}),
    AppointmentStatus.IN_SERVICE: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)
RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

CENTS = Decimal("0.01")


def decide_transition(current: AppointmentStatus, new: AppointmentStatus) -> AppointmentStatus:
    """Return ``new`` when the move is legal, else raise ``InvalidTransitionError``."""
    current = AppointmentStatus(current)
    new = AppointmentStatus(new)
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(current, new, f"Appointment is already {current} and cannot change")
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, new)
    return new


def can_cancel(status: AppointmentStatus) -> bool:
    return AppointmentStatus.CANCELLED in ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def can_reschedule(status: AppointmentStatus) -> bool:
    return AppointmentStatus(status) in RESCHEDULABLE_STATUSES


def compute_cancellation_fee(
    booking_fee: Decimal,
    starts_at: datetime,
    now: datetime,
    policy: CancellationPolicy,
) -> Decimal:
    """Fee owed when cancelling at ``now``.

    Free when more than ``policy.free_until_hours`` remain before the start.
    Inside that window the tightest matching tier applies, falling back to
    ``policy.fee_percentage``.
    """
    remaining = starts_at - now
    if remaining > timedelta(hours=policy.free_until_hours):
        return Decimal("0.00")

    percentage = policy.fee_percentage
    for tier in sorted(policy.tiers, key=lambda item: item.within_hours):
        if remaining <= timedelta(hours=tier.within_hours):
            percentage = tier.percentage
            break
    fee = Decimal(booking_fee) * Decimal(percentage) / Decimal(100)
    return fee.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_end_time(start_time: str, duration: int) -> str:
    return add_minutes_to_time(start_time, duration)


def append_status_history(
    appointment: Appointment,
    status: AppointmentStatus,
    actor: str,
    now: datetime,
    note: str | None = None,
) -> dict:
    entry = {
        "status": AppointmentStatus(status).value,
        "timestamp": isoformat_utc(now),
        "actor": actor,
        "note": note,
    }
    appointment.status_history.append(entry)
    return entry


def build_modification_entry(
    old_date: date,
    old_time: str,
    new_date: date,
    new_time: str,
    reason: str | None,
    actor: str,
    now: datetime,
) -> dict:
    return {
        "oldDate": old_date.isoformat(),
        "oldTime": old_time,
        "newDate": new_date.isoformat(),
        "newTime": new_time,
        "reason": reason,
        "actor": actor,
        "timestamp": isoformat_utc(now),
    }


def apply_transition(
    appointment: Appointment,
    new_status: AppointmentStatus,
    actor: str,
    now: datetime,
    config: SchedulingConfig,
    note: str | None = None,
) -> Appointment:
    """Validate and apply ``new_status`` in memory, stamping audit fields."""
    target = decide_transition(appointment.status, new_status)
    if target == AppointmentStatus.CONFIRMED:
        appointment.confirmed_at = now
    elif target == AppointmentStatus.COMPLETED:
        appointment.completed_at = now
    elif target == AppointmentStatus.CANCELLED:
        appointment.cancelled_at = now
        appointment.cancellation_fee = compute_cancellation_fee(
            appointment.booking_fee,
            appointment_start(appointment.appointment_date, appointment.appointment_time, config),
            now,
            config.cancellation,
        )
        if note:
            appointment.cancellation_reason = note
    appointment.status = target
    append_status_history(appointment, target, actor, now, note)
    return appointment
