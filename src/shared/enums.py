"""Shared enumerations used across modules.

The string values are part of the public contract and are stored verbatim.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Iterable, TypeVar

EnumType = TypeVar("EnumType", bound=StrEnum)


def enum_values(enum_cls: Iterable[EnumType]) -> list[str]:
    """Return the .value for each enum member (used by SQLAlchemy)."""
    return [member.value for member in enum_cls]


class UserRole(StrEnum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"
    ADMIN = "admin"


class AppointmentStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_SERVICE = "in-service"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceRecordStatus(StrEnum):
    RECEIVED = "received"
    IN_PROGRESS = "in-progress"
    QUALITY_CHECK = "quality-check"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    DEPOSIT_PAID = "deposit-paid"
    PAID = "paid"
    REFUNDED = "refunded"


class NotificationType(StrEnum):
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_ASSIGNED = "appointment_assigned"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    APPOINTMENT_REMINDER = "appointment_reminder"
    SERVICE_STARTED = "service_started"
    SERVICE_COMPLETED = "service_completed"
    VEHICLE_READY = "vehicle_ready"
    SYSTEM_NOTIFICATION = "system_notification"


class NotificationPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DeliveryOutcome(StrEnum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
