from datetime import datetime, timedelta, timezone

import pytest

from src.core.exceptions import InvalidInputError
from src.modules.service_records import timer
from src.modules.service_records.models import ServiceRecord
from src.shared.enums import ServiceRecordStatus

T0 = datetime(2025, 10, 22, 4, 0, tzinfo=timezone.utc)


def _record(estimate=None):
    return ServiceRecord(
        appointment_id="appt",
        customer_id="cust",
        status=ServiceRecordStatus.RECEIVED,
        progress_percentage=0,
        timer_started=False,
        timer_duration=0,
        estimated_duration_minutes=estimate,
        live_updates=[],
    )


def test_pause_and_resume_accumulates_elapsed_time():
    record = _record()
    assert timer.start_timer(record, T0)
    assert timer.stop_timer(record, T0 + timedelta(minutes=10))
    assert timer.start_timer(record, T0 + timedelta(minutes=20))
    assert timer.stop_timer(record, T0 + timedelta(minutes=25))

    assert abs(record.timer_duration - 15 * 60 * 1000) <= 1000
    assert record.timer_started is False
    assert record.timer_start_time is None


def test_first_start_moves_record_into_progress():
    record = _record()
    timer.start_timer(record, T0)
    assert record.status == ServiceRecordStatus.IN_PROGRESS
    assert record.started_at == T0

    timer.stop_timer(record, T0 + timedelta(minutes=1))
    timer.start_timer(record, T0 + timedelta(minutes=2))
    assert record.started_at == T0


def test_start_and_stop_are_idempotent():
    record = _record()
    timer.start_timer(record, T0)
    assert not timer.start_timer(record, T0 + timedelta(minutes=3))
    assert record.timer_start_time == T0

    timer.stop_timer(record, T0 + timedelta(minutes=5))
    assert not timer.stop_timer(record, T0 + timedelta(minutes=9))
    assert record.timer_duration == 5 * 60 * 1000


def test_current_value_includes_the_running_interval():
    record = _record()
    timer.start_timer(record, T0)
    timer.stop_timer(record, T0 + timedelta(minutes=2))
    timer.start_timer(record, T0 + timedelta(minutes=4))
    assert timer.current_timer_value(record, T0 + timedelta(minutes=5)) == 3 * 60 * 1000


def test_naive_start_time_is_read_as_utc():
    record = _record()
    timer.start_timer(record, T0)
    record.timer_start_time = T0.replace(tzinfo=None)
    timer.stop_timer(record, T0 + timedelta(seconds=30))
    assert record.timer_duration == 30_000


def test_derived_progress_is_capped():
    record = _record(estimate=60)
    timer.start_timer(record, T0)
    assert timer.derived_progress(record, T0 + timedelta(minutes=30)) == pytest.approx(50.0)
    assert timer.derived_progress(record, T0 + timedelta(minutes=90)) == 100.0

    manual = _record()
    manual.progress_percentage = 40
    assert timer.derived_progress(manual, T0) == 40.0


def test_live_update_validation():
    record = _record()
    entry = timer.add_live_update(record, "  Oil drained  ", "Kasun", T0)
    assert entry["message"] == "Oil drained"
    assert record.live_updates == [entry]

    with pytest.raises(InvalidInputError):
        timer.add_live_update(record, "   ", "Kasun", T0)
    with pytest.raises(InvalidInputError):
        timer.add_live_update(record, "x" * 501, "Kasun", T0)
