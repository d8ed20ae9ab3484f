"""Execution timer arithmetic over a ``ServiceRecord``.

All functions take ``now`` explicitly. ``start_timer`` and ``stop_timer`` are
idempotent: repeating either leaves ``timer_duration`` untouched.
"""

from __future__ import annotations

from datetime import datetime

from src.core.exceptions import InvalidInputError
from src.modules.service_records.models import ServiceRecord
from src.shared.clock import ensure_utc, isoformat_utc
from src.shared.enums import ServiceRecordStatus

LIVE_UPDATE_MAX_LENGTH = 500


def _elapsed_ms(since: datetime, now: datetime) -> int:
    delta = ensure_utc(now) - ensure_utc(since)
    return max(0, int(delta.total_seconds() * 1000))


def start_timer(record: ServiceRecord, now: datetime) -> bool:
    """Start or resume; returns False when already running."""
    if record.timer_started:
        return False
    record.timer_started = True
    record.timer_start_time = now
    if record.started_at is None:
        record.started_at = now
        if record.status == ServiceRecordStatus.RECEIVED:
            record.status = ServiceRecordStatus.IN_PROGRESS
    return True


def stop_timer(record: ServiceRecord, now: datetime) -> bool:
    """Fold the running interval into ``timer_duration``; False when already stopped."""
    if not record.timer_started or record.timer_start_time is None:
        record.timer_started = False
        return False
    record.timer_duration = (record.timer_duration or 0) + _elapsed_ms(record.timer_start_time, now)
    record.timer_started = False
    record.timer_start_time = None
    return True


def current_timer_value(record: ServiceRecord, now: datetime) -> int:
    accumulated = record.timer_duration or 0
    if record.timer_started and record.timer_start_time is not None:
        return accumulated + _elapsed_ms(record.timer_start_time, now)
    return accumulated


def derived_progress(record: ServiceRecord, now: datetime) -> float:
    """Elapsed share of the estimate, capped at 100; falls back to the stored value."""
    if not record.estimated_duration_minutes:
        return float(record.progress_percentage or 0)
    estimated_ms = record.estimated_duration_minutes * 60 * 1000
    return min(100.0, current_timer_value(record, now) / estimated_ms * 100)


def add_live_update(record: ServiceRecord, message: str, author: str, now: datetime) -> dict:
    text = (message or "").strip()
    if not text:
        raise InvalidInputError("Live update message cannot be empty")
    if len(text) > LIVE_UPDATE_MAX_LENGTH:
        raise InvalidInputError(f"Live update message is limited to {LIVE_UPDATE_MAX_LENGTH} characters")
    entry = {"message": text, "timestamp": isoformat_utc(now), "author": author}
    record.live_updates.append(entry)
    return entry
