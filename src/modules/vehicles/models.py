"""Vehicle ORM model (owned by the vehicle catalogue, read here)."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.models import TimestampMixin
from src.shared.ulid import generate_ulid


class Vehicle(Base, TimestampMixin):
    __tablename__ = "vehicles"

    vehicle_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    owner_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    make: Mapped[str] = mapped_column(String(60), nullable=False)
    model: Mapped[str] = mapped_column(String(60), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer)
    plate_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
