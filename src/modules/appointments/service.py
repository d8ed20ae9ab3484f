"""Appointment service layer."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.exceptions import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
)
from src.modules.appointments.assignment import AssignmentEngine
from src.modules.appointments.lifecycle import (
    append_status_history,
    apply_transition,
    build_modification_entry,
    can_cancel,
    can_reschedule,
    compute_end_time,
)
from src.modules.appointments.models import Appointment
from src.modules.appointments.schemas import AppointmentStats, BookingRejected
from src.modules.notifications.service import NotificationFanout
from src.modules.schedule.locks import AdmissionLock
from src.modules.schedule.service import validate_booking
from src.modules.schedule.slots import add_minutes_to_time, appointment_start, parse_date, vehicle_durations
from src.modules.users.directory import UserDirectory
from src.modules.users.models import User
from src.modules.vehicles.directory import VehicleDirectory, VehicleSnapshot
from src.shared.enums import AppointmentStatus, UserRole
from src.shared.ulid import generate_ulid

logger = logging.getLogger(__name__)

# Owned by the service record: entering or leaving service also opens or closes it.
SERVICE_RECORD_STATUSES = (AppointmentStatus.IN_SERVICE, AppointmentStatus.COMPLETED)


class AppointmentService:
    def __init__(
        self,
        db: AsyncSession,
        config: SchedulingConfig,
        lock: AdmissionLock,
        users: UserDirectory,
        vehicles: VehicleDirectory,
        fanout: NotificationFanout,
        assignment: AssignmentEngine,
    ):
        self.db = db
        self.config = config
        self.lock = lock
        self.users = users
        self.vehicles = vehicles
        self.fanout = fanout
        self.assignment = assignment

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    # Booking -----------------------------------------------------------------

    async def create_appointment(
        self,
        customer_id: str,
        vehicle_id: str,
        service_ids: Sequence[str],
        appointment_date: date | str,
        appointment_time: str,
        duration: int,
        actor: str | None = None,
        customer_notes: str | None = None,
    ) -> Appointment | BookingRejected:
        """Admit a single-vehicle booking at ``pending`` and hand it to assignment."""
        await self._get_customer(customer_id)
        vehicle = await self._get_owned_vehicle(vehicle_id, customer_id)
        day = parse_date(appointment_date)

        def build() -> list[Appointment]:
            return [
                self._new_appointment(
                    customer_id,
                    vehicle_id,
                    service_ids,
                    day,
                    appointment_time,
                    duration,
                    actor or customer_id,
                    customer_notes,
                )
            ]

        admitted = await self._admit(day, appointment_time, duration, [vehicle_id], build)
        if isinstance(admitted, BookingRejected):
            return admitted

        appointment = admitted[0]
        logger.info(
            "Appointment %s admitted for %s %s-%s",
            appointment.appointment_id,
            day,
            appointment.appointment_time,
            appointment.end_time,
        )
        await self.fanout.notify_appointment_created(appointment, vehicle)
        await self.assignment.auto_assign(appointment)
        return appointment

    async def create_group_booking(
        self,
        customer_id: str,
        vehicle_ids: Sequence[str],
        service_ids: Sequence[str],
        appointment_date: date | str,
        appointment_time: str,
        base_duration: int,
        actor: str | None = None,
        customer_notes: str | None = None,
    ) -> list[Appointment] | BookingRejected:
        """Book several vehicles back-to-back in one bay under a shared ``group_id``."""
        vehicle_ids = list(dict.fromkeys(vehicle_ids))
        await self._get_customer(customer_id)
        snapshots = [await self._get_owned_vehicle(vehicle_id, customer_id) for vehicle_id in vehicle_ids]
        day = parse_date(appointment_date)
        durations = vehicle_durations(base_duration, len(vehicle_ids), self.config)
        total = sum(durations)

        def build() -> list[Appointment]:
            group_id = generate_ulid()
            members = []
            start = appointment_time
            for sequence, (vehicle_id, duration) in enumerate(zip(vehicle_ids, durations), start=1):
                member = self._new_appointment(
                    customer_id,
                    vehicle_id,
                    service_ids,
                    day,
                    start,
                    duration,
                    actor or customer_id,
                    customer_notes,
                )
                member.group_id = group_id
                member.sequence = sequence
                members.append(member)
                start = add_minutes_to_time(start, duration)
            return members

        admitted = await self._admit(day, appointment_time, total, vehicle_ids, build)
        if isinstance(admitted, BookingRejected):
            return admitted

        logger.info(
            "Group %s admitted: %s vehicles, %s min from %s %s",
            admitted[0].group_id,
            len(admitted),
            total,
            day,
            appointment_time,
        )
        for member, snapshot in zip(admitted, snapshots):
            await self.fanout.notify_appointment_created(member, snapshot)
            await self.assignment.auto_assign(member)
        return admitted

    # Lifecycle ---------------------------------------------------------------

    async def transition_appointment(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        actor: str,
        note: str | None = None,
    ) -> Appointment:
        appointment = await self._get(appointment_id)
        if new_status in SERVICE_RECORD_STATUSES:
            raise InvalidTransitionError(
                appointment.status,
                new_status,
                "Service start and completion go through the service record",
            )
        previous = appointment.status
        apply_transition(appointment, new_status, actor, self._now(), self.config, note=note)
        await self.db.commit()
        logger.info("Appointment %s moved %s -> %s by %s", appointment_id, previous, appointment.status, actor)

        if appointment.status == AppointmentStatus.CONFIRMED:
            await self.fanout.notify_appointment_confirmed(appointment)
        elif appointment.status == AppointmentStatus.CANCELLED:
            await self.fanout.notify_appointment_cancelled(appointment)
        return appointment

    async def cancel_appointment(
        self,
        appointment_id: str,
        actor: str,
        reason: str | None = None,
        customer_id: str | None = None,
    ) -> Appointment:
        appointment = await self._get(appointment_id, customer_id=customer_id)
        if not can_cancel(appointment.status):
            raise InvalidTransitionError(
                appointment.status,
                AppointmentStatus.CANCELLED,
                f"A {appointment.status} appointment cannot be cancelled",
            )
        return await self.transition_appointment(
            appointment_id,
            AppointmentStatus.CANCELLED,
            actor,
            note=reason or "Cancelled",
        )

    async def reschedule_appointment(
        self,
        appointment_id: str,
        new_date: date | str,
        new_time: str,
        reason: str | None,
        actor: str,
        customer_id: str | None = None,
    ) -> Appointment | BookingRejected:
        appointment = await self._get(appointment_id, customer_id=customer_id)
        if not can_reschedule(appointment.status):
            raise InvalidTransitionError(
                appointment.status,
                appointment.status,
                "Only pending or confirmed appointments can be rescheduled",
            )

        now = self._now()
        if appointment.modification_count >= self.config.max_modifications:
            return BookingRejected(
                errors=[f"Appointments can be modified at most {self.config.max_modifications} times"]
            )
        current_start = appointment_start(appointment.appointment_date, appointment.appointment_time, self.config)
        if current_start - now < timedelta(hours=self.config.modification_cutoff_hours):
            return BookingRejected(
                errors=[
                    f"Appointments can only be changed up to {self.config.modification_cutoff_hours} hours before they start"
                ]
            )

        day = parse_date(new_date)
        old_date, old_time = appointment.appointment_date, appointment.appointment_time

        def build() -> list[Appointment]:
            appointment.appointment_date = day
            appointment.appointment_time = new_time
            appointment.end_time = compute_end_time(new_time, appointment.duration)
            appointment.modification_count += 1
            appointment.modification_history.append(
                build_modification_entry(old_date, old_time, day, new_time, reason, actor, self._now())
            )
            return [appointment]

        admitted = await self._admit(
            day,
            new_time,
            appointment.duration,
            [appointment.vehicle_id],
            build,
            exclude_appointment_id=appointment.appointment_id,
        )
        if isinstance(admitted, BookingRejected):
            return admitted

        logger.info(
            "Appointment %s rescheduled %s %s -> %s %s by %s",
            appointment_id,
            old_date,
            old_time,
            day,
            new_time,
            actor,
        )
        await self.fanout.notify_appointment_rescheduled(appointment, old_date, old_time, reason)
        return appointment

    # Reads -------------------------------------------------------------------

    async def get_appointment(self, appointment_id: str) -> Appointment:
        return await self._get(appointment_id)

    async def get_for_user(self, appointment_id: str, user: User) -> Appointment:
        appointment = await self._get(appointment_id)
        if user.role == UserRole.ADMIN:
            return appointment
        if user.role == UserRole.CUSTOMER and appointment.customer_id == user.user_id:
            return appointment
        if user.role == UserRole.EMPLOYEE and appointment.technician_id == user.user_id:
            return appointment
        raise NotFoundError("Appointment", appointment_id)

    async def list_for_customer(self, customer_id: str, status: AppointmentStatus | None = None) -> list[Appointment]:
        stmt = select(Appointment).where(Appointment.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Appointment.status == status)
        stmt = stmt.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_technician(
        self,
        technician_id: str,
        day: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        stmt = select(Appointment).where(Appointment.technician_id == technician_id)
        if day is not None:
            stmt = stmt.where(Appointment.appointment_date == day)
        if status is not None:
            stmt = stmt.where(Appointment.status == status)
        stmt = stmt.order_by(Appointment.appointment_date, Appointment.appointment_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def admin_list(
        self,
        status: AppointmentStatus | None = None,
        day: date | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Appointment], int]:
        filters = []
        if status is not None:
            filters.append(Appointment.status == status)
        if day is not None:
            filters.append(Appointment.appointment_date == day)
        total = (await self.db.execute(select(func.count(Appointment.appointment_id)).where(*filters))).scalar_one()
        stmt = (
            select(Appointment)
            .where(*filters)
            .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time, Appointment.appointment_id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def status_counts(self, day: date | None = None) -> AppointmentStats:
        stmt = select(Appointment.status, func.count(Appointment.appointment_id)).group_by(Appointment.status)
        if day is not None:
            stmt = stmt.where(Appointment.appointment_date == day)
        counts = {status: 0 for status in AppointmentStatus}
        for status, count in (await self.db.execute(stmt)).all():
            counts[AppointmentStatus(status)] = count
        return AppointmentStats(total=sum(counts.values()), by_status=counts)

    # Helpers -----------------------------------------------------------------

    async def _admit(
        self,
        day: date,
        start_time: str,
        duration: int,
        vehicle_ids: Sequence[str],
        build: Callable[[], list[Appointment]],
        exclude_appointment_id: str | None = None,
    ) -> list[Appointment] | BookingRejected:
        """Revalidate and persist under the date's admission lock.

        A lock conflict is retried once before surfacing.
        """
        for attempt in (1, 2):
            try:
                async with self.lock.hold(day):
                    validation = await validate_booking(
                        self.db,
                        day,
                        start_time,
                        duration,
                        self.config,
                        self._now(),
                        vehicle_ids=vehicle_ids,
                        exclude_appointment_id=exclude_appointment_id,
                    )
                    if not validation.is_valid:
                        return BookingRejected(
                            errors=validation.errors,
                            warnings=validation.warnings,
                            capacity=validation.capacity,
                        )
                    appointments = build()
                    self.db.add_all(appointments)
                    await self.db.commit()
                    return appointments
            except ConcurrencyConflictError:
                if attempt == 2:
                    raise
                logger.warning("Admission conflict on %s, retrying once", day)
        raise ConcurrencyConflictError()

    def _new_appointment(
        self,
        customer_id: str,
        vehicle_id: str,
        service_ids: Sequence[str],
        day: date,
        start_time: str,
        duration: int,
        actor: str,
        customer_notes: str | None,
    ) -> Appointment:
        appointment = Appointment(
            appointment_id=generate_ulid(),
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            service_ids=list(service_ids),
            appointment_date=day,
            appointment_time=start_time,
            end_time=compute_end_time(start_time, duration),
            duration=duration,
            status=AppointmentStatus.PENDING,
            status_history=[],
            modification_count=0,
            modification_history=[],
            booking_fee=self.config.booking_fee,
            customer_notes=customer_notes,
        )
        append_status_history(appointment, AppointmentStatus.PENDING, actor, self._now(), "Appointment created")
        return appointment

    async def _get(self, appointment_id: str, customer_id: str | None = None) -> Appointment:
        stmt = select(Appointment).where(Appointment.appointment_id == appointment_id)
        if customer_id:
            stmt = stmt.where(Appointment.customer_id == customer_id)
        result = await self.db.execute(stmt)
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def _get_customer(self, customer_id: str) -> None:
        customer = await self.users.get_user(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)

    async def _get_owned_vehicle(self, vehicle_id: str, customer_id: str) -> VehicleSnapshot:
        vehicle = await self.vehicles.get_vehicle(vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        if vehicle.owner_id != customer_id:
            raise PermissionDeniedError("Vehicle does not belong to this customer")
        return vehicle
