"""Service record ORM model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import ServiceRecordStatus, enum_values
from src.shared.models import JsonList, TimestampMixin
from src.shared.ulid import generate_ulid


class ServiceRecord(Base, TimestampMixin):
    __tablename__ = "service_records"
    __table_args__ = (
        CheckConstraint("progress_percentage BETWEEN 0 AND 100", name="progress_range"),
        CheckConstraint("timer_duration >= 0", name="timer_non_negative"),
    )

    service_record_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    appointment_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("appointments.appointment_id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    technician_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="SET NULL"),
        index=True,
    )
    customer_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status: Mapped[ServiceRecordStatus] = mapped_column(
        Enum(
            ServiceRecordStatus,
            values_callable=enum_values,
            validate_strings=True,
            name="servicerecordstatus",
        ),
        nullable=False,
        default=ServiceRecordStatus.RECEIVED,
    )
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    timer_started: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    timer_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # Accumulated milliseconds across pause/resume cycles; only ever grows.
    timer_duration: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    estimated_duration_minutes: Mapped[int | None] = mapped_column(Integer)
    live_updates: Mapped[list[dict]] = mapped_column(JsonList, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text)
