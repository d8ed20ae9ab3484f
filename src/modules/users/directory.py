"""Read-only lookups against the user store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.users.models import User
from src.shared.enums import UserRole


@dataclass(frozen=True)
class ChannelPreferences:
    in_app: bool = True
    email: bool = True
    sms: bool = True


@dataclass(frozen=True)
class UserContact:
    user_id: str
    role: UserRole
    display_name: str
    email: str | None
    phone_number: str | None
    employee_id: str | None = None
    preferences: ChannelPreferences = ChannelPreferences()

    @classmethod
    def from_user(cls, user: User) -> "UserContact":
        return cls(
            user_id=user.user_id,
            role=user.role,
            display_name=user.display_name,
            email=user.email,
            phone_number=user.phone_number,
            employee_id=user.employee_id,
            preferences=ChannelPreferences(
                in_app=user.notify_in_app,
                email=user.notify_email,
                sms=user.notify_sms,
            ),
        )


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> UserContact | None: ...

    async def list_by_role(self, role: UserRole) -> list[UserContact]: ...


class SqlUserDirectory:
    """UserDirectory backed by the shared ``users`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: str) -> UserContact | None:
        result = await self.db.execute(select(User).where(User.user_id == user_id))
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        return UserContact.from_user(user)

    async def list_by_role(self, role: UserRole) -> list[UserContact]:
        result = await self.db.execute(
            select(User).where(User.role == role, User.is_active.is_(True)).order_by(User.user_id)
        )
        return [UserContact.from_user(user) for user in result.scalars().all()]
