"""Service execution: records, timer, progress and completion."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from src.modules.appointments.lifecycle import apply_transition
from src.modules.appointments.models import Appointment
from src.modules.notifications.service import NotificationFanout
from src.modules.service_records import timer
from src.modules.service_records.models import ServiceRecord
from src.modules.service_records.schemas import ServiceRecordPublic
from src.modules.users.models import User
from src.shared.enums import AppointmentStatus, ServiceRecordStatus, UserRole

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ServiceRecordStatus.RECEIVED, ServiceRecordStatus.IN_PROGRESS, ServiceRecordStatus.QUALITY_CHECK)


class ServiceRecordService:
    def __init__(self, db: AsyncSession, config: SchedulingConfig, fanout: NotificationFanout):
        self.db = db
        self.config = config
        self.fanout = fanout

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    async def begin_service(self, appointment_id: str, user: User) -> ServiceRecord:
        """Move a confirmed appointment into service and open its record at ``received``."""
        appointment = await self._get_appointment(appointment_id)
        if user.role != UserRole.ADMIN and appointment.technician_id != user.user_id:
            raise PermissionDeniedError("Only the assigned technician can start this service")
        existing = await self.db.execute(
            select(ServiceRecord).where(ServiceRecord.appointment_id == appointment_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise InvalidTransitionError(
                appointment.status,
                AppointmentStatus.IN_SERVICE,
                "A service record already exists for this appointment",
            )

        now = self._now()
        apply_transition(appointment, AppointmentStatus.IN_SERVICE, user.user_id, now, self.config, note="Service started")
        record = ServiceRecord(
            appointment_id=appointment.appointment_id,
            technician_id=appointment.technician_id,
            customer_id=appointment.customer_id,
            status=ServiceRecordStatus.RECEIVED,
            progress_percentage=0,
            timer_started=False,
            timer_duration=0,
            estimated_duration_minutes=appointment.duration,
            live_updates=[],
        )
        timer.add_live_update(record, "Vehicle received", user.display_name, now)
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info("Service record %s opened for appointment %s", record.service_record_id, appointment_id)
        return record

    async def start_timer(self, record_id: str, user: User) -> ServiceRecord:
        record = await self._get_for_worker(record_id, user)
        self._ensure_open(record)
        now = self._now()
        first_start = record.started_at is None
        if not timer.start_timer(record, now):
            return record
        timer.add_live_update(record, "Work started" if first_start else "Work resumed", user.display_name, now)
        await self.db.commit()
        logger.info("Timer started on record %s", record_id)
        if first_start:
            appointment = await self._get_appointment(record.appointment_id)
            await self.fanout.notify_service_started(appointment)
        return record

    async def stop_timer(self, record_id: str, user: User) -> ServiceRecord:
        record = await self._get_for_worker(record_id, user)
        now = self._now()
        if timer.stop_timer(record, now):
            timer.add_live_update(record, "Work paused", user.display_name, now)
            await self.db.commit()
            logger.info("Timer stopped on record %s at %s ms", record_id, record.timer_duration)
        return record

    async def add_live_update(self, record_id: str, message: str, user: User) -> ServiceRecord:
        record = await self._get_for_worker(record_id, user)
        timer.add_live_update(record, message, user.display_name, self._now())
        await self.db.commit()
        return record

    async def update_progress(self, record_id: str, percentage: int, user: User) -> ServiceRecord:
        if isinstance(percentage, bool) or not isinstance(percentage, int) or not 0 <= percentage <= 100:
            raise InvalidInputError("Progress must be between 0 and 100")
        record = await self._get_for_worker(record_id, user)
        self._ensure_open(record)
        record.progress_percentage = percentage
        await self.db.commit()
        return record

    async def mark_quality_check(self, record_id: str, user: User) -> ServiceRecord:
        record = await self._get_for_worker(record_id, user)
        if record.status != ServiceRecordStatus.IN_PROGRESS:
            raise InvalidTransitionError(record.status, ServiceRecordStatus.QUALITY_CHECK)
        now = self._now()
        timer.stop_timer(record, now)
        record.status = ServiceRecordStatus.QUALITY_CHECK
        timer.add_live_update(record, "Quality check in progress", user.display_name, now)
        await self.db.commit()
        return record

    async def complete_service(self, record_id: str, user: User, notes: str | None = None) -> ServiceRecord:
        record = await self._get_for_worker(record_id, user)
        if record.status not in (ServiceRecordStatus.IN_PROGRESS, ServiceRecordStatus.QUALITY_CHECK):
            raise InvalidTransitionError(record.status, ServiceRecordStatus.COMPLETED)
        appointment = await self._get_appointment(record.appointment_id)

        now = self._now()
        timer.stop_timer(record, now)
        record.status = ServiceRecordStatus.COMPLETED
        record.progress_percentage = 100
        record.completed_at = now
        if notes:
            record.notes = notes
        timer.add_live_update(record, "Service completed", user.display_name, now)
        apply_transition(appointment, AppointmentStatus.COMPLETED, user.user_id, now, self.config, note="Service completed")
        await self.db.commit()
        logger.info(
            "Service record %s completed after %s ms; appointment %s completed",
            record_id,
            record.timer_duration,
            appointment.appointment_id,
        )

        await self.fanout.notify_service_completed(appointment, notes=notes)
        await self.fanout.notify_vehicle_ready(appointment)
        return record

    async def get_record(self, record_id: str, user: User) -> ServiceRecordPublic:
        record = await self._get(record_id)
        if not self._can_view(record, user):
            raise NotFoundError("Service record", record_id)
        return self.to_public(record)

    async def list_mine(self, user: User) -> list[ServiceRecordPublic]:
        stmt = select(ServiceRecord)
        if user.role == UserRole.CUSTOMER:
            stmt = stmt.where(ServiceRecord.customer_id == user.user_id)
        elif user.role == UserRole.EMPLOYEE:
            stmt = stmt.where(ServiceRecord.technician_id == user.user_id)
        stmt = stmt.order_by(ServiceRecord.created_at.desc(), ServiceRecord.service_record_id.desc())
        result = await self.db.execute(stmt)
        return [self.to_public(record) for record in result.scalars().all()]

    def to_public(self, record: ServiceRecord) -> ServiceRecordPublic:
        now = self._now()
        public = ServiceRecordPublic.model_validate(record)
        public.current_timer_value = timer.current_timer_value(record, now)
        public.derived_progress = round(timer.derived_progress(record, now), 1)
        return public

    def _ensure_open(self, record: ServiceRecord) -> None:
        if record.status not in OPEN_STATUSES:
            raise InvalidTransitionError(record.status, record.status, f"Service record is {record.status}")

    def _can_view(self, record: ServiceRecord, user: User) -> bool:
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.EMPLOYEE:
            return record.technician_id == user.user_id
        return record.customer_id == user.user_id

    async def _get(self, record_id: str) -> ServiceRecord:
        result = await self.db.execute(select(ServiceRecord).where(ServiceRecord.service_record_id == record_id))
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("Service record", record_id)
        return record

    async def _get_for_worker(self, record_id: str, user: User) -> ServiceRecord:
        record = await self._get(record_id)
        if user.role != UserRole.ADMIN and record.technician_id != user.user_id:
            raise PermissionDeniedError("Only the assigned technician can update this service")
        return record

    async def _get_appointment(self, appointment_id: str) -> Appointment:
        result = await self.db.execute(select(Appointment).where(Appointment.appointment_id == appointment_id))
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment
