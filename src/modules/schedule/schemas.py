"""Schedule schemas."""

from pydantic import Field

from src.shared.schemas import CamelModel


class TimeSlot(CamelModel):
    """Computed availability for one window; never persisted."""

    start_time: str
    end_time: str
    capacity_total: int
    capacity_used: int
    capacity_remaining: int
    is_available: bool
    display_time: str | None = None


class CapacityCheck(CamelModel):
    is_available: bool
    capacity_used: int
    capacity_total: int
    capacity_remaining: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class BookingValidation(CamelModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    capacity: CapacityCheck | None = None
