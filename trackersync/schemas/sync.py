"""
Pydantic schemas for reconciliation inputs, matches and run summaries.

JSON payloads use camelCase (trackerId, upsertedMappings, ...); Python
code uses the snake_case attribute names.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SyncMode = Literal["auto", "manual"]
LinkMethod = Literal["auto", "manual"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchReason(str, Enum):
    """Why a vehicle qualified as a candidate."""

    EXACT_MATCH = "exact_match"
    PREFIX_VARIANT = "prefix_variant"
    FUZZY_MATCH = "fuzzy_match"
    DIGITS_SUBSET = "digits_subset"


class DeviceRecord(CamelModel):
    """One tracker unit reported by the provider or entered by an operator."""

    tracker_id: str
    raw_plate: str = ""
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    reported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("tracker_id")
    @classmethod
    def _tracker_id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("tracker_id must not be empty")
        return v

    @model_validator(mode="after")
    def _coordinates_together(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class VehicleRecord(CamelModel):
    """An active fleet vehicle eligible for matching."""

    vehicle_id: str
    plate_number: str


class MatchCandidate(CamelModel):
    vehicle_id: str
    plate_number: str = Field(serialization_alias="plate")
    score: float = Field(ge=0.0, le=1.0)
    reason: MatchReason


class MatchSuggestion(CamelModel):
    """A device whose candidates did not clear the auto-apply bar."""

    device_plate: str
    normalized_plate: str
    tracker_id: str | None = None
    top_candidates: list[MatchCandidate] = Field(default_factory=list)


class DiscoveredDevice(CamelModel):
    plate: str
    tracker_id: str


class SyncSummary(CamelModel):
    """
    Outcome of one reconciliation run.

    matched and skipped count devices by outcome; an errored device is in
    skipped. updated_vehicles, upserted_mappings and updated_locations count
    writes that actually happened, so a device whose mapping was written but
    whose location update failed adds to upserted_mappings and skipped, not
    to matched. Re-applying an already open mapping counts as matched only.
    """

    mode: SyncMode
    matched: int = 0
    updated_vehicles: int = 0
    upserted_mappings: int = 0
    updated_locations: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    unmatched_suggestions: list[MatchSuggestion] = Field(default_factory=list)
    discovered_devices: list[DiscoveredDevice] = Field(default_factory=list)


class ManualDeviceInput(CamelModel):
    """One operator-supplied device/plate pair (manual mode)."""

    plate: str | None = None
    tracker_id: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None


class SyncRequest(CamelModel):
    mode: SyncMode = "auto"
    devices: list[ManualDeviceInput] = Field(default_factory=list)


class SyncResponse(CamelModel):
    success: bool
    summary: SyncSummary
    report: str | None = None


class DeviceVehicleMapping(CamelModel):
    """Persisted device<->vehicle link. Open while closed_at is None."""

    tracker_id: str
    vehicle_id: str
    plate_number: str | None = None
    link_method: LinkMethod
    linked_at: datetime
    closed_at: datetime | None = None


class VehicleLocation(CamelModel):
    vehicle_id: str
    latitude: float
    longitude: float
    address: str | None = None
    observed_at: datetime
    updated_at: datetime
