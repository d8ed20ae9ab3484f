"""Schedule routes."""

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig
from src.core.database import get_db
from src.core.deps import get_scheduling_config
from src.modules.schedule.schemas import TimeSlot
from src.modules.schedule.service import query_availability

router = APIRouter(prefix="/api/v1/schedule", tags=["schedule"])


@router.get("/availability", response_model=list[TimeSlot])
async def availability(
    date_value: date = Query(..., alias="date"),
    duration: int = Query(60, gt=0, le=24 * 60),
    vehicles: int = Query(1, ge=1, le=10),
    config: SchedulingConfig = Depends(get_scheduling_config),
    db: AsyncSession = Depends(get_db),
) -> list[TimeSlot]:
    return await query_availability(db, date_value, duration, vehicles, config, now=datetime.now(tz=timezone.utc))
