from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from src.core.config import SchedulingConfig
from src.core.exceptions import InvalidInputError
from src.modules.schedule.service import validate_appointment_time
from src.modules.schedule.slots import (
    add_minutes_to_time,
    calculate_multi_vehicle_duration,
    format_time_display,
    generate_time_slots,
    is_beyond_booking_window,
    is_working_day,
    meets_minimum_notice,
    minutes_to_time,
    time_to_minutes,
    vehicle_durations,
)

WEDNESDAY = date(2025, 10, 22)
SUNDAY = date(2025, 10, 26)
NOW = datetime(2025, 10, 15, 3, 30, tzinfo=timezone.utc)


def test_time_conversions():
    assert time_to_minutes("08:30") == 510
    assert minutes_to_time(510) == "08:30"
    assert add_minutes_to_time("17:15", 45) == "18:00"
    assert time_to_minutes("24:00") == 1440


@pytest.mark.parametrize("value", ["8:30", "25:00", "12:60", "noon", None])
def test_time_to_minutes_rejects_malformed(value):
    with pytest.raises(InvalidInputError):
        time_to_minutes(value)


def test_generate_time_slots_covers_business_hours():
    slots = generate_time_slots(WEDNESDAY, 60, SchedulingConfig())
    assert [slot.start_time for slot in slots][:3] == ["08:00", "09:00", "10:00"]
    assert slots[-1].start_time == "17:00"
    assert slots[-1].end_time == "18:00"
    assert all(slot.duration == 60 for slot in slots)


def test_generate_time_slots_drops_windows_running_past_close():
    slots = generate_time_slots(WEDNESDAY, 150, SchedulingConfig())
    assert slots[-1].start_time == "15:00"
    assert slots[-1].end_time == "17:30"


def test_generate_time_slots_skips_lunch_when_enabled():
    config = SchedulingConfig(lunch_break_enabled=True)
    starts = [slot.start_time for slot in generate_time_slots(WEDNESDAY, 60, config)]
    assert "12:00" not in starts
    assert "11:00" in starts and "13:00" in starts


def test_no_slots_on_closed_or_blocked_days():
    assert generate_time_slots(SUNDAY, 60, SchedulingConfig()) == []
    blocked = SchedulingConfig(blocked_dates=frozenset({WEDNESDAY}))
    assert generate_time_slots(WEDNESDAY, 60, blocked) == []
    assert not is_working_day(WEDNESDAY, blocked)


@pytest.mark.parametrize("duration", [0, -30, 1.5, True])
def test_generate_time_slots_rejects_bad_duration(duration):
    with pytest.raises(InvalidInputError):
        generate_time_slots(WEDNESDAY, duration, SchedulingConfig())


def test_generate_time_slots_rejects_bad_date():
    with pytest.raises(InvalidInputError):
        generate_time_slots("2025-13-40", 60, SchedulingConfig())


def test_multi_vehicle_duration_applies_factor_to_followers():
    config = SchedulingConfig()
    assert vehicle_durations(60, 3, config) == [60, 45, 45]
    assert calculate_multi_vehicle_duration(60, 1, config) == 60
    assert calculate_multi_vehicle_duration(50, 2, config) == 50 + 38


def test_booking_window_and_notice():
    config = SchedulingConfig()
    assert is_beyond_booking_window(date(2025, 11, 15), NOW, config)
    assert not is_beyond_booking_window(date(2025, 11, 14), NOW, config)
    # 09:00 local now, so 11:00 is exactly two hours away.
    assert meets_minimum_notice(date(2025, 10, 15), "11:00", NOW, config)
    assert not meets_minimum_notice(date(2025, 10, 15), "10:00", NOW, config)


def test_validate_appointment_time_collects_messages():
    config = replace(SchedulingConfig(), lunch_break_enabled=True)
    assert validate_appointment_time(WEDNESDAY, "10:00", 60, config, NOW) == []

    errors = validate_appointment_time(SUNDAY, "07:00", 60, config, NOW)
    assert "Selected date is not a working day" in errors
    assert "The shop opens at 08:00" in errors

    errors = validate_appointment_time(WEDNESDAY, "11:30", 60, config, NOW)
    assert errors == ["Selected time overlaps with lunch break"]

    errors = validate_appointment_time(WEDNESDAY, "17:30", 60, config, NOW)
    assert errors == ["Service duration extends beyond business hours"]

    errors = validate_appointment_time(date(2025, 10, 14), "10:00", 60, config, NOW)
    assert errors == ["Cannot book appointments in the past"]


def test_format_time_display():
    assert format_time_display("14:30") == "2:30 PM"
    assert format_time_display("00:05") == "12:05 AM"
    assert format_time_display("12:00") == "12:00 PM"
