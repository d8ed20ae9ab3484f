"""Service record schemas."""

from datetime import datetime

from pydantic import Field

from src.shared.enums import ServiceRecordStatus
from src.shared.schemas import CamelModel


class LiveUpdate(CamelModel):
    message: str
    timestamp: datetime
    author: str


class ServiceRecordPublic(CamelModel):
    service_record_id: str
    appointment_id: str
    technician_id: str | None = None
    customer_id: str
    status: ServiceRecordStatus
    progress_percentage: int
    timer_started: bool
    timer_start_time: datetime | None = None
    timer_duration: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    estimated_duration_minutes: int | None = None
    live_updates: list[LiveUpdate]
    notes: str | None = None
    current_timer_value: int = 0
    derived_progress: float = 0.0


class BeginServiceRequest(CamelModel):
    appointment_id: str


class LiveUpdateRequest(CamelModel):
    message: str = Field(min_length=1, max_length=500)


class ProgressRequest(CamelModel):
    progress_percentage: int = Field(ge=0, le=100)


class CompleteServiceRequest(CamelModel):
    notes: str | None = Field(None, max_length=2000)
