"""Notification schemas."""

from datetime import datetime

from src.shared.enums import NotificationPriority, NotificationType, UserRole
from src.shared.schemas import CamelModel, PaginationMeta


class NotificationPublic(CamelModel):
    notification_id: str
    recipient_id: str
    recipient_role: UserRole
    type: NotificationType
    title: str
    message: str
    entity_type: str | None = None
    entity_id: str | None = None
    is_read: bool
    read_at: datetime | None = None
    priority: NotificationPriority
    action_url: str | None = None
    created_at: datetime | None = None


class NotificationPage(CamelModel):
    items: list[NotificationPublic]
    meta: PaginationMeta
    unread_count: int


class UnreadCount(CamelModel):
    unread_count: int


class MarkAllReadResult(CamelModel):
    updated: int
