"""Pure slot arithmetic for the shop's business hours.

Nothing here touches the database. Every function takes the
``SchedulingConfig`` it should honour, so callers and tests can vary opening
hours, capacity and the booking window without patching globals.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from src.core.config import SchedulingConfig
from src.core.exceptions import InvalidInputError
from src.shared.clock import combine_local

MINUTES_PER_DAY = 24 * 60
_HHMM = re.compile(r"^(\d{2}):(\d{2})$")


@dataclass(frozen=True)
class SlotWindow:
    """A candidate ``[start_time, end_time)`` window on one day."""

    start_time: str
    end_time: str

    @property
    def duration(self) -> int:
        return time_to_minutes(self.end_time) - time_to_minutes(self.start_time)


def parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid date: {value!r}") from exc


def time_to_minutes(value: str) -> int:
    match = _HHMM.match(value) if isinstance(value, str) else None
    if match is None:
        raise InvalidInputError(f"Invalid time: {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes > 59 or (hours == 24 and minutes):
        raise InvalidInputError(f"Invalid time: {value!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise InvalidInputError(f"Minutes out of range for a single day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes_to_time(value: str, minutes: int) -> str:
    return minutes_to_time(time_to_minutes(value) + minutes)


def _require_positive_duration(duration: int) -> None:
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise InvalidInputError(f"Duration must be a positive number of minutes, got {duration!r}")


def is_blocked_date(day: date | str, config: SchedulingConfig) -> bool:
    return parse_date(day) in config.blocked_dates


def is_working_day(day: date | str, config: SchedulingConfig) -> bool:
    """Weekday is an operating day (Monday=0) and the date is not blocked."""
    target = parse_date(day)
    return target.weekday() in config.operating_days and target not in config.blocked_dates


def overlaps_lunch_break(start_time: str, duration: int, config: SchedulingConfig) -> bool:
    if not config.lunch_break_enabled:
        return False
    start = time_to_minutes(start_time)
    end = start + duration
    return start < time_to_minutes(config.lunch_break_end) and end > time_to_minutes(config.lunch_break_start)


def fits_before_closing(start_time: str, duration: int, config: SchedulingConfig) -> bool:
    return time_to_minutes(start_time) + duration <= time_to_minutes(config.close_time)


def generate_time_slots(day: date | str, duration: int, config: SchedulingConfig) -> list[SlotWindow]:
    """Candidate windows of ``duration`` minutes, one per granularity step from opening."""
    target = parse_date(day)
    _require_positive_duration(duration)
    if not is_working_day(target, config):
        return []

    step = config.slot_granularity_minutes
    if step <= 0:
        raise InvalidInputError("Slot granularity must be positive")

    opening = time_to_minutes(config.open_time)
    closing = time_to_minutes(config.close_time)
    slots: list[SlotWindow] = []
    start = opening
    while start + duration <= closing:
        start_time = minutes_to_time(start)
        if not overlaps_lunch_break(start_time, duration, config):
            slots.append(SlotWindow(start_time, minutes_to_time(start + duration)))
        start += step
    return slots


def vehicle_durations(base_duration: int, vehicle_count: int, config: SchedulingConfig) -> list[int]:
    """Per-vehicle occupancy for a grouped booking.

    The first vehicle takes the full ``base_duration``; each following vehicle
    shares setup and teardown and takes ``ceil(base * multi_vehicle_factor)``,
    never less than one minute.
    """
    _require_positive_duration(base_duration)
    if isinstance(vehicle_count, bool) or not isinstance(vehicle_count, int) or vehicle_count < 1:
        raise InvalidInputError(f"Vehicle count must be at least 1, got {vehicle_count!r}")
    follow_on = max(1, math.ceil(base_duration * config.multi_vehicle_factor))
    return [base_duration] + [follow_on] * (vehicle_count - 1)


def calculate_multi_vehicle_duration(base_duration: int, vehicle_count: int, config: SchedulingConfig) -> int:
    return sum(vehicle_durations(base_duration, vehicle_count, config))


def appointment_start(day: date | str, start_time: str, config: SchedulingConfig) -> datetime:
    # "24:00" is valid as a closing time only.
    if time_to_minutes(start_time) >= MINUTES_PER_DAY:
        raise InvalidInputError(f"Invalid start time: {start_time!r}")
    return combine_local(parse_date(day), start_time, config.tzinfo)


def is_past_datetime(day: date | str, start_time: str, now: datetime, config: SchedulingConfig) -> bool:
    return appointment_start(day, start_time, config) < now


def is_beyond_booking_window(day: date | str, now: datetime, config: SchedulingConfig) -> bool:
    today = now.astimezone(config.tzinfo).date()
    return parse_date(day) > today + timedelta(days=config.advance_booking_days)


def meets_minimum_notice(day: date | str, start_time: str, now: datetime, config: SchedulingConfig) -> bool:
    earliest = now + timedelta(hours=config.minimum_notice_hours)
    return appointment_start(day, start_time, config) >= earliest


def format_time_display(value: str) -> str:
    """``"14:30"`` -> ``"2:30 PM"``."""
    minutes = time_to_minutes(value)
    hours, mins = divmod(minutes % MINUTES_PER_DAY, 60)
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{mins:02d} {period}"
