"""
Mapping Repository Port.

The orchestrator only talks to storage through MappingRepository, so the
matching and decision logic can run against an in-memory fake in tests
and against SQLite (or anything else) in production.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from trackersync import db
from trackersync.schemas.sync import LinkMethod, VehicleRecord


@dataclass(frozen=True)
class UpsertResult:
    created: bool
    vehicle_updated: bool = False
    closed_mappings: tuple = field(default_factory=tuple)


class MappingRepository(ABC):
    """Storage operations needed by a reconciliation run."""

    @abstractmethod
    async def list_vehicles(self) -> list[VehicleRecord]:
        """Active vehicles eligible for matching."""

    @abstractmethod
    async def upsert_mapping(self, tracker_id: str, vehicle_id: str, link_method: LinkMethod) -> UpsertResult:
        """
        Link tracker_id to vehicle_id.

        Calling twice with the same pair is a no-op the second time
        (created=False). A new vehicle for a known tracker closes the old
        mapping and opens a new one; so does a new tracker for a vehicle.
        """

    @abstractmethod
    async def update_vehicle_location(
        self,
        vehicle_id: str,
        latitude: float,
        longitude: float,
        address: str | None,
        observed_at: datetime,
    ) -> bool:
        """Write the location unless observed_at is older than the stored one."""


class SQLiteMappingRepository(MappingRepository):
    """MappingRepository backed by the aiosqlite layer in trackersync.db."""

    async def list_vehicles(self) -> list[VehicleRecord]:
        rows = await db.get_active_vehicles()
        return [VehicleRecord(vehicle_id=r["id"], plate_number=r["plate_number"]) for r in rows]

    async def upsert_mapping(self, tracker_id: str, vehicle_id: str, link_method: LinkMethod) -> UpsertResult:
        result = await db.link_tracker_to_vehicle(tracker_id, vehicle_id, link_method)
        return UpsertResult(
            created=result["created"],
            vehicle_updated=result["vehicle_updated"],
            closed_mappings=tuple(result["closed"]),
        )

    async def update_vehicle_location(
        self,
        vehicle_id: str,
        latitude: float,
        longitude: float,
        address: str | None,
        observed_at: datetime,
    ) -> bool:
        return await db.record_vehicle_location(vehicle_id, latitude, longitude, address, observed_at)
