"""Appointment ORM model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import AppointmentStatus, PaymentStatus, enum_values
from src.shared.models import JsonList, TimestampMixin
from src.shared.ulid import booking_reference, generate_ulid


class Appointment(Base, TimestampMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_date_status", "appointment_date", "status"),
        Index("ix_appointments_technician_date", "technician_id", "appointment_date"),
        CheckConstraint("duration > 0", name="positive_duration"),
        CheckConstraint("end_time > appointment_time", name="time_order"),
    )

    appointment_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    customer_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    vehicle_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("vehicles.vehicle_id", ondelete="RESTRICT"),
        nullable=False,
    )
    service_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Zero-padded "HH:MM"; lexical order equals chronological order.
    appointment_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(
            AppointmentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="appointmentstatus",
        ),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    status_history: Mapped[list[dict]] = mapped_column(JsonList, nullable=False, default=list)

    technician_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
    )
    # Snapshot taken at assignment time; not refreshed if the technician is renamed.
    technician_name: Mapped[str | None] = mapped_column(String(100))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    group_id: Mapped[str | None] = mapped_column(String(26), index=True)
    sequence: Mapped[int | None] = mapped_column(Integer)

    modification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modification_history: Mapped[list[dict]] = mapped_column(JsonList, nullable=False, default=list)

    booking_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("5.00"))
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="paymentstatus",
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    cancellation_fee: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    customer_notes: Mapped[str | None] = mapped_column(Text)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def reference(self) -> str:
        return booking_reference(self.appointment_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)
