"""Reusable ORM mixins and column types."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column

# Append-only audit logs (status history, live updates) are stored as JSON
# lists; MutableList makes in-place .append() visible to the unit of work.
JsonList = MutableList.as_mutable(JSON)


class TimestampMixin:
    """Track creation/update times in UTC."""

    # Server-generated timestamps are loaded right after flush; async sessions cannot lazy-load them.
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
