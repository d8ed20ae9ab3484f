"""Technician auto-assignment."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.exceptions import ConcurrencyConflictError, InvalidInputError, InvalidTransitionError, NotFoundError
from src.modules.appointments.lifecycle import apply_transition, append_status_history
from src.modules.appointments.models import Appointment
from src.modules.notifications.service import DispatchReport, NotificationFanout
from src.modules.schedule.locks import AdmissionLock
from src.modules.users.directory import UserContact, UserDirectory
from src.shared.enums import AppointmentStatus, UserRole

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
LOAD_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.IN_SERVICE)


@dataclass(frozen=True)
class TechnicianLoad:
    user_id: str
    employee_id: str
    display_name: str
    load: int


def choose_technician(candidates: Iterable[TechnicianLoad], threshold: int) -> TechnicianLoad | None:
    """Least-loaded technician below ``threshold``; ties go to the smallest employee id."""
    eligible = [candidate for candidate in candidates if candidate.load < threshold]
    if not eligible:
        return None
    return min(eligible, key=lambda candidate: (candidate.load, candidate.employee_id))


class AssignmentEngine:
    def __init__(
        self,
        db: AsyncSession,
        users: UserDirectory,
        fanout: NotificationFanout,
        config: SchedulingConfig,
        lock: AdmissionLock,
    ):
        self.db = db
        self.users = users
        self.fanout = fanout
        self.config = config
        self.lock = lock

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    async def technician_loads(self, day: date) -> list[TechnicianLoad]:
        technicians = await self.users.list_by_role(UserRole.EMPLOYEE)
        if not technicians:
            return []
        result = await self.db.execute(
            select(Appointment.technician_id, func.count(Appointment.appointment_id))
            .where(
                Appointment.appointment_date == day,
                Appointment.status.in_(LOAD_STATUSES),
                Appointment.technician_id.is_not(None),
            )
            .group_by(Appointment.technician_id)
        )
        counts = dict(result.all())
        return [
            TechnicianLoad(
                user_id=tech.user_id,
                employee_id=tech.employee_id or tech.user_id,
                display_name=tech.display_name,
                load=counts.get(tech.user_id, 0),
            )
            for tech in technicians
        ]

    async def auto_assign(self, appointment: Appointment) -> bool:
        """Attach the best technician and confirm; leave ``pending`` when nobody is free.

        Loads are read and the pick committed under the date's admission lock,
        so concurrent bookings cannot push a technician past the threshold.
        """
        if appointment.status != AppointmentStatus.PENDING or appointment.technician_id:
            return False

        try:
            async with self.lock.hold(appointment.appointment_date):
                pick = choose_technician(
                    await self.technician_loads(appointment.appointment_date),
                    self.config.assignment_workload_threshold,
                )
                if pick is None:
                    logger.info(
                        "No technician below load %s on %s; appointment %s stays pending",
                        self.config.assignment_workload_threshold,
                        appointment.appointment_date,
                        appointment.appointment_id,
                    )
                    return False

                now = self._now()
                self._attach(appointment, pick.user_id, pick.display_name, now)
                apply_transition(
                    appointment,
                    AppointmentStatus.CONFIRMED,
                    SYSTEM_ACTOR,
                    now,
                    self.config,
                    note=f"Auto-assigned to {pick.display_name}",
                )
                await self.db.commit()
        except ConcurrencyConflictError:
            # The booking itself is stored; the assignment sweep picks it up later.
            logger.warning(
                "Assignment lock busy for %s; appointment %s stays pending",
                appointment.appointment_date,
                appointment.appointment_id,
            )
            return False
        logger.info(
            "Appointment %s assigned to %s (load %s)",
            appointment.appointment_id,
            pick.employee_id,
            pick.load,
        )
        await self._notify_assignment(appointment, newly_confirmed=True)
        return True

    async def retry_assignment(self, appointment_id: str) -> Appointment:
        appointment = await self._get(appointment_id)
        await self.auto_assign(appointment)
        return appointment

    async def retry_pending_for_date(self, day: date) -> list[Appointment]:
        """Sweep still-unassigned pending bookings for ``day``; returns the ones confirmed."""
        result = await self.db.execute(
            select(Appointment)
            .where(
                Appointment.appointment_date == day,
                Appointment.status == AppointmentStatus.PENDING,
                Appointment.technician_id.is_(None),
            )
            .order_by(Appointment.appointment_time, Appointment.created_at)
        )
        assigned = []
        for appointment in result.scalars().all():
            if await self.auto_assign(appointment):
                assigned.append(appointment)
        return assigned

    async def assign_manually(self, appointment_id: str, technician_id: str, actor: str) -> Appointment:
        appointment = await self._get(appointment_id)
        if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
            raise InvalidTransitionError(
                appointment.status,
                AppointmentStatus.CONFIRMED,
                f"Cannot assign a technician to a {appointment.status} appointment",
            )
        technician = await self._get_technician(technician_id)

        now = self._now()
        self._attach(appointment, technician.user_id, technician.display_name, now)
        newly_confirmed = appointment.status == AppointmentStatus.PENDING
        note = f"Assigned to {technician.display_name} by {actor}"
        if newly_confirmed:
            apply_transition(appointment, AppointmentStatus.CONFIRMED, actor, now, self.config, note=note)
        else:
            append_status_history(appointment, appointment.status, actor, now, note)
        await self.db.commit()
        logger.info("Appointment %s manually assigned to %s by %s", appointment_id, technician_id, actor)
        await self._notify_assignment(appointment, newly_confirmed=newly_confirmed)
        return appointment

    def _attach(self, appointment: Appointment, technician_id: str, technician_name: str, now: datetime) -> None:
        appointment.technician_id = technician_id
        appointment.technician_name = technician_name
        appointment.assigned_at = now

    async def _notify_assignment(self, appointment: Appointment, newly_confirmed: bool) -> list[DispatchReport]:
        # Two independent dispatches; each absorbs its own channel failures.
        reports: list[DispatchReport] = []
        if newly_confirmed:
            reports.append(await self.fanout.notify_appointment_confirmed(appointment))
        technician_report = await self.fanout.notify_technician_assigned(appointment)
        if technician_report is not None:
            reports.append(technician_report)
        return reports

    async def _get(self, appointment_id: str) -> Appointment:
        result = await self.db.execute(select(Appointment).where(Appointment.appointment_id == appointment_id))
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def _get_technician(self, technician_id: str) -> UserContact:
        technician = await self.users.get_user(technician_id)
        if technician is None:
            raise NotFoundError("Technician", technician_id)
        if technician.role != UserRole.EMPLOYEE:
            raise InvalidInputError("Appointments can only be assigned to employees")
        return technician
