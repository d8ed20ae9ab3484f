"""Appointments API routes."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.database import get_db
from src.core.deps import (
    enforce_booking_rate_limit,
    get_assignment_engine,
    get_current_user,
    get_fanout,
    get_lock,
    get_scheduling_config,
    get_user_directory,
    get_vehicle_directory,
    require_admin,
    require_customer,
)
from src.modules.appointments.assignment import AssignmentEngine
from src.modules.appointments.schemas import (
    AppointmentCreate,
    AppointmentPage,
    AppointmentPublic,
    AppointmentStats,
    AssignRequest,
    BookingRejected,
    CancelRequest,
    GroupBookingCreate,
    GroupBookingPublic,
    RescheduleRequest,
    TransitionRequest,
)
from src.modules.appointments.service import AppointmentService
from src.modules.notifications.service import NotificationFanout
from src.modules.schedule.locks import AdmissionLock
from src.modules.schedule.slots import calculate_multi_vehicle_duration
from src.modules.users.directory import UserDirectory
from src.modules.users.models import User
from src.modules.vehicles.directory import VehicleDirectory
from src.shared.enums import AppointmentStatus, UserRole
from src.shared.schemas import PaginationMeta

router = APIRouter(prefix="/api/v1/appointments", tags=["appointments"])
admin_router = APIRouter(prefix="/api/v1/admin/appointments", tags=["admin-appointments"])


def get_service(
    db: AsyncSession = Depends(get_db),
    config: SchedulingConfig = Depends(get_scheduling_config),
    lock: AdmissionLock = Depends(get_lock),
    users: UserDirectory = Depends(get_user_directory),
    vehicles: VehicleDirectory = Depends(get_vehicle_directory),
    fanout: NotificationFanout = Depends(get_fanout),
    assignment: AssignmentEngine = Depends(get_assignment_engine),
) -> AppointmentService:
    return AppointmentService(db, config, lock, users, vehicles, fanout, assignment)


def rejected_response(rejection: BookingRejected) -> JSONResponse:
    return JSONResponse(
        {
            "success": False,
            "message": rejection.errors[0] if rejection.errors else "Booking rejected",
            "errors": rejection.errors,
            "warnings": rejection.warnings,
            "capacity": rejection.capacity.model_dump(by_alias=True) if rejection.capacity else None,
        },
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


@router.post(
    "",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_booking_rate_limit)],
)
async def create_appointment(
    payload: AppointmentCreate,
    current_user: User = Depends(require_customer),
    service: AppointmentService = Depends(get_service),
):
    result = await service.create_appointment(
        customer_id=current_user.user_id,
        vehicle_id=payload.vehicle_id,
        service_ids=payload.service_ids,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        duration=payload.duration,
        actor=current_user.user_id,
        customer_notes=payload.customer_notes,
    )
    if isinstance(result, BookingRejected):
        return rejected_response(result)
    return result


@router.post(
    "/group",
    response_model=GroupBookingPublic,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_booking_rate_limit)],
)
async def create_group_booking(
    payload: GroupBookingCreate,
    current_user: User = Depends(require_customer),
    service: AppointmentService = Depends(get_service),
    config: SchedulingConfig = Depends(get_scheduling_config),
):
    result = await service.create_group_booking(
        customer_id=current_user.user_id,
        vehicle_ids=payload.vehicle_ids,
        service_ids=payload.service_ids,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        base_duration=payload.duration,
        actor=current_user.user_id,
        customer_notes=payload.customer_notes,
    )
    if isinstance(result, BookingRejected):
        return rejected_response(result)
    return GroupBookingPublic(
        group_id=result[0].group_id,
        total_duration=calculate_multi_vehicle_duration(payload.duration, len(result), config),
        appointments=[AppointmentPublic.model_validate(item) for item in result],
    )


@router.get("/me", response_model=list[AppointmentPublic])
async def my_appointments(
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_service),
) -> list[AppointmentPublic]:
    if current_user.role == UserRole.EMPLOYEE:
        return await service.list_for_technician(current_user.user_id, status=status_filter)
    return await service.list_for_customer(current_user.user_id, status=status_filter)


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    return await service.get_for_user(appointment_id, current_user)


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_appointment(
    appointment_id: str,
    payload: CancelRequest,
    current_user: User = Depends(require_customer),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    return await service.cancel_appointment(
        appointment_id,
        actor=current_user.user_id,
        reason=payload.reason,
        customer_id=current_user.user_id,
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentPublic)
async def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleRequest,
    current_user: User = Depends(require_customer),
    service: AppointmentService = Depends(get_service),
):
    result = await service.reschedule_appointment(
        appointment_id,
        new_date=payload.new_date,
        new_time=payload.new_time,
        reason=payload.reason,
        actor=current_user.user_id,
        customer_id=current_user.user_id,
    )
    if isinstance(result, BookingRejected):
        return rejected_response(result)
    return result


@admin_router.get("", response_model=AppointmentPage)
async def admin_list_appointments(
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    day: date | None = Query(None, alias="date"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPage:
    items, total = await service.admin_list(status=status_filter, day=day, limit=limit, offset=offset)
    return AppointmentPage(
        items=[AppointmentPublic.model_validate(item) for item in items],
        meta=PaginationMeta(total=total, limit=limit, offset=offset),
    )


@admin_router.get("/stats", response_model=AppointmentStats)
async def admin_appointment_stats(
    day: date | None = Query(None, alias="date"),
    _: User = Depends(require_admin),
    service: AppointmentService = Depends(get_service),
) -> AppointmentStats:
    return await service.status_counts(day)


@admin_router.post("/assignment-sweep", response_model=list[AppointmentPublic])
async def admin_assignment_sweep(
    day: date = Query(..., alias="date"),
    _: User = Depends(require_admin),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> list[AppointmentPublic]:
    return await engine.retry_pending_for_date(day)


@admin_router.post("/{appointment_id}/transition", response_model=AppointmentPublic)
async def admin_transition_appointment(
    appointment_id: str,
    payload: TransitionRequest,
    current_user: User = Depends(require_admin),
    service: AppointmentService = Depends(get_service),
) -> AppointmentPublic:
    return await service.transition_appointment(
        appointment_id,
        payload.status,
        actor=current_user.user_id,
        note=payload.note,
    )


@admin_router.post("/{appointment_id}/assign", response_model=AppointmentPublic)
async def admin_assign_technician(
    appointment_id: str,
    payload: AssignRequest,
    current_user: User = Depends(require_admin),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> AppointmentPublic:
    return await engine.assign_manually(appointment_id, payload.technician_id, actor=current_user.user_id)


@admin_router.post("/{appointment_id}/auto-assign", response_model=AppointmentPublic)
async def admin_retry_assignment(
    appointment_id: str,
    _: User = Depends(require_admin),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> AppointmentPublic:
    return await engine.retry_assignment(appointment_id)
