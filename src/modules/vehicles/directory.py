"""Vehicle lookups and the ``VehicleRef`` union used by notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, TypeAlias

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.vehicles.models import Vehicle


@dataclass(frozen=True)
class VehicleSnapshot:
    vehicle_id: str
    owner_id: str
    make: str
    model: str
    plate_number: str
    year: int | None = None

    @property
    def label(self) -> str:
        return f"{self.make} {self.model} ({self.plate_number})"

    @classmethod
    def from_vehicle(cls, vehicle: Vehicle) -> "VehicleSnapshot":
        return cls(
            vehicle_id=vehicle.vehicle_id,
            owner_id=vehicle.owner_id,
            make=vehicle.make,
            model=vehicle.model,
            plate_number=vehicle.plate_number,
            year=vehicle.year,
        )


VehicleId: TypeAlias = str
VehicleRef: TypeAlias = VehicleId | VehicleSnapshot


class VehicleDirectory(Protocol):
    async def get_vehicle(self, vehicle_id: str) -> VehicleSnapshot | None: ...


class SqlVehicleDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_vehicle(self, vehicle_id: str) -> VehicleSnapshot | None:
        result = await self.db.execute(select(Vehicle).where(Vehicle.vehicle_id == vehicle_id))
        vehicle = result.scalar_one_or_none()
        return VehicleSnapshot.from_vehicle(vehicle) if vehicle else None


async def resolve_vehicle(ref: VehicleRef | None, directory: VehicleDirectory) -> VehicleSnapshot | None:
    """Turn a vehicle id or an already-loaded snapshot into a snapshot."""
    if ref is None or isinstance(ref, VehicleSnapshot):
        return ref
    return await directory.get_vehicle(ref)
