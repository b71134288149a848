"""
Shared fixtures for TrackerSync tests.
"""
import os
import sys
from datetime import UTC, datetime
from unittest import mock

import pytest
import pytest_asyncio

# Ensure the project package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Force env vars so Settings doesn't pick up a developer .env
os.environ.setdefault("TRACKING_USERNAME", "")
os.environ.setdefault("TRACKING_PASSWORD", "")
os.environ.setdefault("RUN_LOCK_BACKEND", "memory")

import trackersync.db as db_mod  # noqa: E402
from trackersync.schemas.sync import VehicleRecord  # noqa: E402
from trackersync.services.mapping_repository import MappingRepository, UpsertResult  # noqa: E402


class InMemoryMappingRepository(MappingRepository):
    """MappingRepository fake: dict-backed, with optional injected failures."""

    def __init__(self, vehicles: list[VehicleRecord]):
        self.vehicles = list(vehicles)
        self.open_by_tracker: dict[str, str] = {}
        self.history: list[dict] = []
        self.locations: dict[str, dict] = {}
        self.fail_upsert_for: set[str] = set()
        self.fail_location_for: set[str] = set()
        self.upsert_calls: list[tuple[str, str, str]] = []

    async def list_vehicles(self) -> list[VehicleRecord]:
        return list(self.vehicles)

    async def upsert_mapping(self, tracker_id, vehicle_id, link_method) -> UpsertResult:
        self.upsert_calls.append((tracker_id, vehicle_id, link_method))
        if tracker_id in self.fail_upsert_for:
            raise RuntimeError("database is locked")
        if self.open_by_tracker.get(tracker_id) == vehicle_id:
            return UpsertResult(created=False)

        closed = []
        for t, v in list(self.open_by_tracker.items()):
            if t == tracker_id or v == vehicle_id:
                del self.open_by_tracker[t]
                closed.append((t, v))
        for entry in self.history:
            if (entry["tracker_id"], entry["vehicle_id"]) in closed and entry["closed_at"] is None:
                entry["closed_at"] = datetime.now(UTC)

        self.open_by_tracker[tracker_id] = vehicle_id
        self.history.append(
            {
                "tracker_id": tracker_id,
                "vehicle_id": vehicle_id,
                "link_method": link_method,
                "linked_at": datetime.now(UTC),
                "closed_at": None,
            }
        )
        return UpsertResult(created=True, vehicle_updated=True, closed_mappings=tuple(closed))

    async def update_vehicle_location(self, vehicle_id, latitude, longitude, address, observed_at) -> bool:
        if vehicle_id in self.fail_location_for:
            raise RuntimeError("location store unavailable")
        stored = self.locations.get(vehicle_id)
        if stored and stored["observed_at"] > observed_at:
            return False
        self.locations[vehicle_id] = {
            "latitude": latitude,
            "longitude": longitude,
            "address": address,
            "observed_at": observed_at,
        }
        return True


@pytest.fixture
def vehicles():
    """A small fleet with Saudi-style plates."""
    return [
        VehicleRecord(vehicle_id="v-001", plate_number="ABJ123"),
        VehicleRecord(vehicle_id="v-002", plate_number="XDR 4521"),
        VehicleRecord(vehicle_id="v-003", plate_number="KLN-7788"),
        VehicleRecord(vehicle_id="v-004", plate_number="TSE 9014"),
    ]


@pytest.fixture
def repository(vehicles):
    return InMemoryMappingRepository(vehicles)


@pytest_asyncio.fixture
async def temp_db(tmp_path):
    """Use a temp database for each test."""
    db_mod._db = None
    temp_path = tmp_path / "test.db"
    with mock.patch.object(db_mod, "DB_PATH", temp_path):
        yield temp_path
        await db_mod.close_db()


@pytest.fixture
def make_repository():
    """Build an in-memory repository over a custom fleet."""
    return InMemoryMappingRepository
