"""Appointments schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from src.modules.schedule.schemas import CapacityCheck
from src.shared.enums import AppointmentStatus, PaymentStatus
from src.shared.schemas import CamelModel, PaginationMeta

HHMM_PATTERN = r"^\d{2}:\d{2}$"


class StatusHistoryEntry(CamelModel):
    status: AppointmentStatus
    timestamp: datetime
    actor: str
    note: str | None = None


class ModificationEntry(CamelModel):
    # Stored keys are already camelCase.
    old_date: date
    old_time: str
    new_date: date
    new_time: str
    reason: str | None = None
    actor: str
    timestamp: datetime


class AppointmentPublic(CamelModel):
    appointment_id: str
    reference: str
    customer_id: str
    vehicle_id: str
    service_ids: list[str]
    appointment_date: date
    appointment_time: str
    end_time: str
    duration: int
    status: AppointmentStatus
    status_history: list[StatusHistoryEntry]
    technician_id: str | None = None
    technician_name: str | None = None
    assigned_at: datetime | None = None
    group_id: str | None = None
    sequence: int | None = None
    modification_count: int
    modification_history: list[ModificationEntry]
    booking_fee: Decimal
    payment_status: PaymentStatus
    cancellation_fee: Decimal | None = None
    cancellation_reason: str | None = None
    customer_notes: str | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None


class AppointmentCreate(CamelModel):
    vehicle_id: str
    service_ids: list[str] = Field(min_length=1)
    appointment_date: date
    appointment_time: str = Field(pattern=HHMM_PATTERN)
    duration: int = Field(gt=0)
    customer_notes: str | None = Field(None, max_length=500)


class GroupBookingCreate(CamelModel):
    vehicle_ids: list[str] = Field(min_length=1)
    service_ids: list[str] = Field(min_length=1)
    appointment_date: date
    appointment_time: str = Field(pattern=HHMM_PATTERN)
    duration: int = Field(gt=0, description="Base duration for a single vehicle")
    customer_notes: str | None = Field(None, max_length=500)


class GroupBookingPublic(CamelModel):
    group_id: str
    total_duration: int
    appointments: list[AppointmentPublic]


class CancelRequest(CamelModel):
    reason: str | None = Field(None, max_length=500)


class RescheduleRequest(CamelModel):
    new_date: date
    new_time: str = Field(pattern=HHMM_PATTERN)
    reason: str | None = Field(None, max_length=500)


class TransitionRequest(CamelModel):
    status: AppointmentStatus
    note: str | None = Field(None, max_length=500)


class AssignRequest(CamelModel):
    technician_id: str


class BookingRejected(CamelModel):
    """Admission refused; reasons are data for the booking UI, not an exception."""

    errors: list[str]
    warnings: list[str] = Field(default_factory=list)
    capacity: CapacityCheck | None = None


class AppointmentStats(CamelModel):
    total: int
    by_status: dict[AppointmentStatus, int]


class AppointmentPage(CamelModel):
    items: list[AppointmentPublic]
    meta: PaginationMeta
