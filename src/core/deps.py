"""FastAPI dependencies for authentication/authorization and service wiring."""

from functools import lru_cache

import redis.asyncio as redis
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import SchedulingConfig, scheduling_config_from_settings, settings
from src.core.database import get_db
from src.core.exceptions import RateLimitExceededError
from src.core.security import TokenDecodeError, decode_access_token
from src.modules.appointments.assignment import AssignmentEngine
from src.modules.notifications.channels import EmailSender, HttpSmsSender, LiveChannel, SmsSender, SmtpEmailSender
from src.modules.notifications.live import hub
from src.modules.notifications.service import NotificationFanout
from src.modules.ratelimit.service import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from src.modules.schedule.locks import AdmissionLock, get_admission_lock
from src.modules.users.directory import SqlUserDirectory, UserDirectory
from src.modules.users.models import User
from src.modules.vehicles.directory import SqlVehicleDirectory, VehicleDirectory
from src.shared.enums import UserRole

bearer_scheme = HTTPBearer(auto_error=False)


async def resolve_user_from_token(token: str, db: AsyncSession) -> User:
    try:
        payload = decode_access_token(token)
    except TokenDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    result = await db.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authentication")
    return await resolve_user_from_token(credentials.credentials, db)


def require_role(*roles: UserRole):
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return current_user

    return dependency


require_customer = require_role(UserRole.CUSTOMER)
require_admin = require_role(UserRole.ADMIN)
require_staff = require_role(UserRole.EMPLOYEE, UserRole.ADMIN)


# Collaborators ---------------------------------------------------------------


@lru_cache(1)
def get_scheduling_config() -> SchedulingConfig:
    return scheduling_config_from_settings()


def get_lock() -> AdmissionLock:
    return get_admission_lock()


@lru_cache(1)
def get_email_sender() -> EmailSender:
    return SmtpEmailSender()


@lru_cache(1)
def get_sms_sender() -> SmsSender:
    return HttpSmsSender()


def get_live_channel() -> LiveChannel:
    return hub


@lru_cache(1)
def get_rate_limiter() -> RateLimiter:
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        return RedisRateLimiter(client, settings.booking_rate_limit, settings.booking_rate_window_seconds)
    return InMemoryRateLimiter(settings.booking_rate_limit, settings.booking_rate_window_seconds)


def get_user_directory(db: AsyncSession = Depends(get_db)) -> UserDirectory:
    return SqlUserDirectory(db)


def get_vehicle_directory(db: AsyncSession = Depends(get_db)) -> VehicleDirectory:
    return SqlVehicleDirectory(db)


def get_fanout(
    db: AsyncSession = Depends(get_db),
    users: UserDirectory = Depends(get_user_directory),
    vehicles: VehicleDirectory = Depends(get_vehicle_directory),
    email_sender: EmailSender = Depends(get_email_sender),
    sms_sender: SmsSender = Depends(get_sms_sender),
    live: LiveChannel = Depends(get_live_channel),
) -> NotificationFanout:
    return NotificationFanout(db, users, vehicles, email_sender, sms_sender, live)


def get_assignment_engine(
    db: AsyncSession = Depends(get_db),
    users: UserDirectory = Depends(get_user_directory),
    fanout: NotificationFanout = Depends(get_fanout),
    config: SchedulingConfig = Depends(get_scheduling_config),
    lock: AdmissionLock = Depends(get_lock),
) -> AssignmentEngine:
    return AssignmentEngine(db, users, fanout, config, lock)


async def enforce_booking_rate_limit(
    current_user: User = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    if not await limiter.check(f"booking:{current_user.user_id}"):
        raise RateLimitExceededError("Too many booking attempts, please try again later")
