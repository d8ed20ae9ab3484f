"""Notification inbox and multi-channel fan-out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import DeliveryError, NotFoundError
from src.modules.notifications.channels import DeliveryResult, EmailSender, LiveChannel, SmsSender
from src.modules.notifications.models import Notification
from src.modules.notifications.schemas import NotificationPublic
from src.modules.notifications.templates import RenderedNotification, render
from src.modules.schedule.slots import format_time_display
from src.modules.users.directory import UserContact, UserDirectory
from src.modules.vehicles.directory import VehicleDirectory, VehicleRef, resolve_vehicle
from src.shared.enums import DeliveryOutcome, NotificationPriority, NotificationType, UserRole

if TYPE_CHECKING:  # pragma: no cover
    from src.modules.appointments.models import Appointment

logger = logging.getLogger(__name__)

NEW_NOTIFICATION_EVENT = "new_notification"
UNREAD_COUNT_EVENT = "unread_count"


class NotificationService:
    """Inbox reads and writes for a single user's notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    async def create(self, recipient: UserContact, event: "NotificationEvent", rendered: RenderedNotification) -> Notification:
        notification = Notification(
            recipient_id=recipient.user_id,
            recipient_role=recipient.role,
            type=event.type,
            title=rendered.title,
            message=rendered.message,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            priority=event.priority,
            action_url=event.action_url,
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def list_notifications(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        filters = [Notification.recipient_id == user_id]
        if unread_only:
            filters.append(Notification.is_read.is_(False))
        total = (await self.db.execute(select(func.count(Notification.notification_id)).where(*filters))).scalar_one()
        stmt = (
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count(Notification.notification_id)).where(
            Notification.recipient_id == user_id,
            Notification.is_read.is_(False),
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.notification_id == notification_id,
                Notification.recipient_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = self._now()
            await self.db.commit()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=self._now())
        )
        await self.db.commit()
        return result.rowcount or 0

    async def purge_expired_notifications(self, retention_days: int | None = None) -> int:
        """Delete notifications that were read more than ``retention_days`` ago."""
        days = settings.notification_retention_days if retention_days is None else retention_days
        cutoff = self._now() - timedelta(days=days)
        result = await self.db.execute(
            delete(Notification).where(Notification.is_read.is_(True), Notification.read_at < cutoff)
        )
        await self.db.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info("Purged %s read notifications older than %s days", purged, days)
        return purged


@dataclass
class NotificationEvent:
    type: NotificationType
    recipient_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    entity_type: str | None = "appointment"
    entity_id: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: str | None = None


@dataclass
class DispatchReport:
    """Per-channel outcome of one dispatch. Failures are data, never raised."""

    type: NotificationType
    recipient_id: str
    in_app: DeliveryOutcome = DeliveryOutcome.SKIPPED
    email: DeliveryOutcome = DeliveryOutcome.SKIPPED
    sms: DeliveryOutcome = DeliveryOutcome.SKIPPED
    notification_id: str | None = None
    errors: list[DeliveryError] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return DeliveryOutcome.SENT in (self.in_app, self.email, self.sms)


class NotificationFanout:
    """Deliver one event over in-app, email and SMS independently.

    The three channels run concurrently, each bounded by its own timeout. A
    failing or slow channel is recorded in the ``DispatchReport`` and logged;
    it never affects the other channels or the caller. Only the in-app channel
    uses the database session, so sharing the caller's session is safe.
    """

    def __init__(
        self,
        db: AsyncSession,
        users: UserDirectory,
        vehicles: VehicleDirectory,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        live: LiveChannel,
        email_timeout: float | None = None,
        sms_timeout: float | None = None,
        in_app_timeout: float | None = None,
        push_timeout: float | None = None,
    ):
        self.inbox = NotificationService(db)
        self.users = users
        self.vehicles = vehicles
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.live = live
        self.email_timeout = email_timeout or settings.email_timeout_seconds
        self.sms_timeout = sms_timeout or settings.sms_timeout_seconds
        self.in_app_timeout = in_app_timeout or settings.in_app_timeout_seconds
        self.push_timeout = push_timeout or settings.push_timeout_seconds

    async def dispatch(self, event: NotificationEvent) -> DispatchReport:
        report = DispatchReport(type=event.type, recipient_id=event.recipient_id)
        recipient = await self.users.get_user(event.recipient_id)
        if recipient is None:
            error = DeliveryError("directory", f"Recipient {event.recipient_id} not found")
            logger.warning("Skipping %s notification: %s", event.type, error)
            report.errors.append(error)
            return report

        rendered = render(event.type, recipient.display_name, event.payload)
        in_app, email, sms = await asyncio.gather(
            self._attempt("in_app", lambda: self._deliver_in_app(recipient, event, rendered, report), self.in_app_timeout),
            self._attempt("email", lambda: self._deliver_email(recipient, rendered), self.email_timeout),
            self._attempt("sms", lambda: self._deliver_sms(recipient, rendered), self.sms_timeout),
        )
        for channel, (outcome, error) in (("in_app", in_app), ("email", email), ("sms", sms)):
            setattr(report, channel, outcome)
            if error is not None:
                report.errors.append(error)
        logger.info(
            "Dispatched %s to %s: in_app=%s email=%s sms=%s",
            event.type,
            recipient.user_id,
            report.in_app,
            report.email,
            report.sms,
        )
        return report

    async def dispatch_many(self, events: list[NotificationEvent]) -> list[DispatchReport]:
        # Recipients run one after another: the in-app channel shares one session.
        return [await self.dispatch(event) for event in events]

    async def _attempt(
        self,
        channel: str,
        deliver: Callable[[], Awaitable[DeliveryOutcome]],
        timeout: float,
    ) -> tuple[DeliveryOutcome, DeliveryError | None]:
        try:
            return await asyncio.wait_for(deliver(), timeout=timeout), None
        except asyncio.TimeoutError:
            error = DeliveryError(channel, f"timed out after {timeout}s")
            logger.warning("Notification channel %s timed out after %ss", channel, timeout)
        except DeliveryError as exc:
            error = exc
            logger.warning("Notification channel %s failed: %s", channel, exc.detail)
        except Exception as exc:  # noqa: BLE001 - delivery failures never reach the caller
            error = DeliveryError(channel, str(exc) or exc.__class__.__name__)
            logger.exception("Notification channel %s raised unexpectedly", channel)
        return DeliveryOutcome.FAILED, error

    async def _deliver_in_app(
        self,
        recipient: UserContact,
        event: NotificationEvent,
        rendered: RenderedNotification,
        report: DispatchReport,
    ) -> DeliveryOutcome:
        if not recipient.preferences.in_app:
            return DeliveryOutcome.SKIPPED
        try:
            notification = await self.inbox.create(recipient, event, rendered)
            unread = await self.inbox.unread_count(recipient.user_id)
        except SQLAlchemyError as exc:
            await self.inbox.db.rollback()
            raise DeliveryError("in_app", f"Could not store notification: {exc}") from exc
        report.notification_id = notification.notification_id

        payload = {
            "notification": NotificationPublic.model_validate(notification).model_dump(mode="json", by_alias=True),
            "unreadCount": unread,
        }
        try:
            await asyncio.wait_for(
                self.live.push_to_user(recipient.user_id, NEW_NOTIFICATION_EVENT, payload),
                timeout=self.push_timeout,
            )
        except Exception:  # noqa: BLE001 - the row is stored; live push is best effort
            logger.warning("Live push to %s failed", recipient.user_id, exc_info=True)
        return DeliveryOutcome.SENT

    async def _deliver_email(self, recipient: UserContact, rendered: RenderedNotification) -> DeliveryOutcome:
        if not recipient.preferences.email or not recipient.email:
            return DeliveryOutcome.SKIPPED
        result = await self.email_sender.send_email(recipient.email, rendered.email_subject, rendered.email_html)
        return _outcome("email", result)

    async def _deliver_sms(self, recipient: UserContact, rendered: RenderedNotification) -> DeliveryOutcome:
        if not recipient.preferences.sms or not recipient.phone_number:
            return DeliveryOutcome.SKIPPED
        result = await self.sms_sender.send_sms(recipient.phone_number, rendered.sms_text)
        return _outcome("sms", result)

    # Event helpers ---------------------------------------------------------

    async def appointment_payload(self, appointment: "Appointment", vehicle: VehicleRef | None = None) -> dict[str, Any]:
        snapshot = await resolve_vehicle(vehicle if vehicle is not None else appointment.vehicle_id, self.vehicles)
        return {
            "reference": appointment.reference,
            "date": _display_date(appointment.appointment_date),
            "time": format_time_display(appointment.appointment_time),
            "vehicle": snapshot.label if snapshot else None,
            "technician": appointment.technician_name,
        }

    def _event(
        self,
        event_type: NotificationType,
        recipient_id: str,
        appointment: "Appointment",
        payload: dict[str, Any],
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        action_url: str | None = None,
    ) -> NotificationEvent:
        return NotificationEvent(
            type=event_type,
            recipient_id=recipient_id,
            payload=payload,
            entity_type="appointment",
            entity_id=appointment.appointment_id,
            priority=priority,
            action_url=action_url or f"/appointments/{appointment.appointment_id}",
        )

    async def notify_admins(
        self,
        event_type: NotificationType,
        payload: dict[str, Any],
        entity_id: str | None = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> list[DispatchReport]:
        admins = await self.users.list_by_role(UserRole.ADMIN)
        events = [
            NotificationEvent(
                type=event_type,
                recipient_id=admin.user_id,
                payload={**payload, "audience": "admin"},
                entity_type="appointment",
                entity_id=entity_id,
                priority=priority,
                action_url=f"/admin/appointments/{entity_id}" if entity_id else None,
            )
            for admin in admins
        ]
        return await self.dispatch_many(events)

    async def notify_appointment_created(
        self,
        appointment: "Appointment",
        vehicle: VehicleRef | None = None,
    ) -> list[DispatchReport]:
        payload = await self.appointment_payload(appointment, vehicle)
        customer = await self.users.get_user(appointment.customer_id)
        payload["customer"] = customer.display_name if customer else None
        reports = [await self.dispatch(self._event(NotificationType.APPOINTMENT_CREATED, appointment.customer_id, appointment, payload))]
        reports.extend(await self.notify_admins(NotificationType.APPOINTMENT_CREATED, payload, appointment.appointment_id))
        return reports

    async def notify_appointment_confirmed(self, appointment: "Appointment", vehicle: VehicleRef | None = None) -> DispatchReport:
        payload = await self.appointment_payload(appointment, vehicle)
        return await self.dispatch(
            self._event(
                NotificationType.APPOINTMENT_CONFIRMED,
                appointment.customer_id,
                appointment,
                payload,
                priority=NotificationPriority.HIGH,
            )
        )

    async def notify_technician_assigned(self, appointment: "Appointment", vehicle: VehicleRef | None = None) -> DispatchReport | None:
        if not appointment.technician_id:
            return None
        payload = await self.appointment_payload(appointment, vehicle)
        customer = await self.users.get_user(appointment.customer_id)
        payload["customer"] = customer.display_name if customer else None
        return await self.dispatch(
            self._event(
                NotificationType.APPOINTMENT_ASSIGNED,
                appointment.technician_id,
                appointment,
                payload,
                priority=NotificationPriority.HIGH,
                action_url=f"/employee/appointments/{appointment.appointment_id}",
            )
        )

    async def notify_appointment_cancelled(
        self,
        appointment: "Appointment",
        vehicle: VehicleRef | None = None,
    ) -> list[DispatchReport]:
        payload = await self.appointment_payload(appointment, vehicle)
        payload["reason"] = appointment.cancellation_reason
        payload["cancellation_fee"] = str(appointment.cancellation_fee) if appointment.cancellation_fee is not None else None
        reports = [
            await self.dispatch(
                self._event(NotificationType.APPOINTMENT_CANCELLED, appointment.customer_id, appointment, payload)
            )
        ]
        if appointment.technician_id:
            reports.append(
                await self.dispatch(
                    self._event(NotificationType.APPOINTMENT_CANCELLED, appointment.technician_id, appointment, payload)
                )
            )
        return reports

    async def notify_appointment_rescheduled(
        self,
        appointment: "Appointment",
        old_date: date,
        old_time: str,
        reason: str | None = None,
        vehicle: VehicleRef | None = None,
    ) -> list[DispatchReport]:
        payload = await self.appointment_payload(appointment, vehicle)
        payload.update(old_date=_display_date(old_date), old_time=format_time_display(old_time), reason=reason)
        recipients = [appointment.customer_id]
        if appointment.technician_id:
            recipients.append(appointment.technician_id)
        return await self.dispatch_many(
            [self._event(NotificationType.APPOINTMENT_RESCHEDULED, user_id, appointment, payload) for user_id in recipients]
        )

    async def notify_service_started(self, appointment: "Appointment", vehicle: VehicleRef | None = None) -> DispatchReport:
        payload = await self.appointment_payload(appointment, vehicle)
        return await self.dispatch(
            self._event(NotificationType.SERVICE_STARTED, appointment.customer_id, appointment, payload)
        )

    async def notify_service_completed(
        self,
        appointment: "Appointment",
        notes: str | None = None,
        vehicle: VehicleRef | None = None,
    ) -> DispatchReport:
        payload = await self.appointment_payload(appointment, vehicle)
        payload["notes"] = notes
        return await self.dispatch(
            self._event(
                NotificationType.SERVICE_COMPLETED,
                appointment.customer_id,
                appointment,
                payload,
                priority=NotificationPriority.HIGH,
            )
        )

    async def notify_vehicle_ready(self, appointment: "Appointment", vehicle: VehicleRef | None = None) -> DispatchReport:
        payload = await self.appointment_payload(appointment, vehicle)
        return await self.dispatch(
            self._event(
                NotificationType.VEHICLE_READY,
                appointment.customer_id,
                appointment,
                payload,
                priority=NotificationPriority.URGENT,
            )
        )


def _outcome(channel: str, result: DeliveryResult) -> DeliveryOutcome:
    if result.success:
        return DeliveryOutcome.SENT
    if result.skipped:
        return DeliveryOutcome.SKIPPED
    raise DeliveryError(channel, result.detail or "provider did not accept the message")


def _display_date(value: date) -> str:
    return value.strftime("%a, %d %b %Y")
