"""In-app notification ORM model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import NotificationPriority, NotificationType, UserRole, enum_values
from src.shared.models import TimestampMixin
from src.shared.ulid import generate_ulid

TITLE_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 500


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        Index("ix_notifications_read_at", "read_at"),
    )

    notification_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    recipient_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    recipient_role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            values_callable=enum_values,
            validate_strings=True,
            name="userrole",
        ),
        nullable=False,
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            values_callable=enum_values,
            validate_strings=True,
            name="notificationtype",
        ),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    message: Mapped[str] = mapped_column(String(MESSAGE_MAX_LENGTH), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(32))
    entity_id: Mapped[str | None] = mapped_column(String(26))
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    priority: Mapped[NotificationPriority] = mapped_column(
        Enum(
            NotificationPriority,
            values_callable=enum_values,
            validate_strings=True,
            name="notificationpriority",
        ),
        nullable=False,
        default=NotificationPriority.MEDIUM,
    )
    action_url: Mapped[str | None] = mapped_column(String(255))
