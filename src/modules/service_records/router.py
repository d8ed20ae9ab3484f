"""Service execution routes used by technicians on the shop floor."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.database import get_db
from src.core.deps import get_current_user, get_fanout, get_scheduling_config, require_staff
from src.modules.notifications.service import NotificationFanout
from src.modules.service_records.schemas import (
    BeginServiceRequest,
    CompleteServiceRequest,
    LiveUpdateRequest,
    ProgressRequest,
    ServiceRecordPublic,
)
from src.modules.service_records.service import ServiceRecordService
from src.modules.users.models import User

router = APIRouter(prefix="/api/v1/service-records", tags=["service-records"])


def get_service(
    db: AsyncSession = Depends(get_db),
    config: SchedulingConfig = Depends(get_scheduling_config),
    fanout: NotificationFanout = Depends(get_fanout),
) -> ServiceRecordService:
    return ServiceRecordService(db, config, fanout)


@router.post("", response_model=ServiceRecordPublic, status_code=status.HTTP_201_CREATED)
async def begin_service(
    payload: BeginServiceRequest,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    record = await service.begin_service(payload.appointment_id, current_user)
    return service.to_public(record)


@router.get("/mine", response_model=list[ServiceRecordPublic])
async def my_service_records(
    current_user: User = Depends(get_current_user),
    service: ServiceRecordService = Depends(get_service),
) -> list[ServiceRecordPublic]:
    return await service.list_mine(current_user)


@router.get("/{record_id}", response_model=ServiceRecordPublic)
async def get_service_record(
    record_id: str,
    current_user: User = Depends(get_current_user),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return await service.get_record(record_id, current_user)


@router.post("/{record_id}/timer/start", response_model=ServiceRecordPublic)
async def start_timer(
    record_id: str,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.start_timer(record_id, current_user))


@router.post("/{record_id}/timer/stop", response_model=ServiceRecordPublic)
async def stop_timer(
    record_id: str,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.stop_timer(record_id, current_user))


@router.post("/{record_id}/live-updates", response_model=ServiceRecordPublic)
async def add_live_update(
    record_id: str,
    payload: LiveUpdateRequest,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.add_live_update(record_id, payload.message, current_user))


@router.patch("/{record_id}/progress", response_model=ServiceRecordPublic)
async def update_progress(
    record_id: str,
    payload: ProgressRequest,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.update_progress(record_id, payload.progress_percentage, current_user))


@router.post("/{record_id}/quality-check", response_model=ServiceRecordPublic)
async def mark_quality_check(
    record_id: str,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.mark_quality_check(record_id, current_user))


@router.post("/{record_id}/complete", response_model=ServiceRecordPublic)
async def complete_service(
    record_id: str,
    payload: CompleteServiceRequest,
    current_user: User = Depends(require_staff),
    service: ServiceRecordService = Depends(get_service),
) -> ServiceRecordPublic:
    return service.to_public(await service.complete_service(record_id, current_user, notes=payload.notes))
