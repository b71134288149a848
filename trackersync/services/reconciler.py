"""
Reconciliation orchestrator.

Start -> DiscoverDevices -> for each device:
    Normalize -> Match -> Decide -> Apply | Suggest | Skip
-> Aggregate -> Completed

Auto mode discovers devices through a DeviceFeed; manual mode takes the
operator's device/plate pairs. Both share the same per-device pipeline.
A failure while processing one device is recorded against that device
and the batch moves on; only invalid manual input, a failed discovery
or a failed vehicle load abort the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from trackersync.config import settings as default_settings
from trackersync.errors import DeviceError, FeedError, ManualInputError, TrackerSyncError
from trackersync.ingestion.base import DeviceFeed
from trackersync.schemas.sync import (
    DeviceRecord,
    DiscoveredDevice,
    ManualDeviceInput,
    MatchSuggestion,
    SyncMode,
    SyncSummary,
    VehicleRecord,
)
from trackersync.services.candidate_matcher import match_candidates
from trackersync.services.decision_policy import AutoApply, DecisionPolicy, Skip, Suggest, decide
from trackersync.services.mapping_repository import MappingRepository
from trackersync.services.run_lock import RunLock, get_run_lock
from trackersync.services.summary import DeviceOutcome, OutcomeBucket, build_summary
from trackersync.utils.plate_normalizer import normalize_plate

logger = logging.getLogger(__name__)


@dataclass
class PendingDevice:
    """One entry of the run's device list. device is None for an incomplete manual pair."""

    tracker_id: str
    raw_plate: str
    device: DeviceRecord | None = None

    @property
    def complete(self) -> bool:
        return self.device is not None


@dataclass
class _RunState:
    mode: SyncMode
    vehicles: list[VehicleRecord]
    seen_trackers: set[str] = field(default_factory=set)
    claimed_vehicles: dict[str, str] = field(default_factory=dict)
    auto_applied: int = 0


def validate_manual_entries(entries) -> list[PendingDevice]:
    """
    Validate operator input before anything is processed.

    Raises ManualInputError for an entry with neither plate nor tracker id,
    or with only one of latitude/longitude. An entry with just one of
    plate/tracker id is kept and will be skipped by the run.
    """
    pending = []
    for i, raw in enumerate(entries):
        try:
            entry = raw if isinstance(raw, ManualDeviceInput) else ManualDeviceInput.model_validate(raw)
        except ValidationError as e:
            raise ManualInputError(f"Device #{i + 1}: {e.errors()[0]['msg']}", index=i) from e

        plate = (entry.plate or "").strip()
        tracker_id = (entry.tracker_id or "").strip()
        if not plate and not tracker_id:
            raise ManualInputError(f"Device #{i + 1}: plate and trackerId are both missing", index=i)
        if (entry.latitude is None) != (entry.longitude is None):
            raise ManualInputError(f"Device #{i + 1}: latitude and longitude must be given together", index=i)

        device = None
        if plate and tracker_id:
            device = DeviceRecord(
                tracker_id=tracker_id,
                raw_plate=plate,
                latitude=entry.latitude,
                longitude=entry.longitude,
                address=entry.address,
            )
        pending.append(PendingDevice(tracker_id=tracker_id, raw_plate=plate, device=device))
    return pending


class Reconciler:
    """Runs reconciliation batches against a MappingRepository."""

    def __init__(self, repository: MappingRepository, config=None, lock: RunLock | None = None):
        self.repository = repository
        self.config = config or default_settings
        self.lock = lock or get_run_lock()
        self.policy = DecisionPolicy.from_settings(self.config)
        self.last_summary: SyncSummary | None = None

    # ─── Entry points ────────────────────────────────────────────────

    async def run_auto(self, feed: DeviceFeed) -> SyncSummary:
        """Discover devices from the feed and reconcile them."""
        async with self.lock.hold():
            devices = await self._discover(feed)
            pending = [PendingDevice(d.tracker_id, d.raw_plate, d) for d in devices]
            return await self._reconcile("auto", pending)

    async def run_manual(self, entries) -> SyncSummary:
        """Reconcile operator-supplied {plate, trackerId, ...} entries."""
        pending = validate_manual_entries(entries)
        async with self.lock.hold():
            return await self._reconcile("manual", pending)

    # ─── Run ─────────────────────────────────────────────────────────

    async def _discover(self, feed: DeviceFeed) -> list[DeviceRecord]:
        logger.info(f"Discovering devices from {feed.source_name}")
        try:
            return await asyncio.wait_for(feed.fetch_devices(), timeout=self.config.feed_timeout_seconds)
        except FeedError:
            raise
        except TimeoutError as e:
            raise FeedError(f"Device discovery timed out after {self.config.feed_timeout_seconds}s") from e
        except Exception as e:
            raise FeedError(f"Device discovery failed: {e}") from e

    async def _reconcile(self, mode: SyncMode, pending: list[PendingDevice]) -> SyncSummary:
        try:
            vehicles = await self._bounded(self.repository.list_vehicles())
        except Exception as e:
            raise TrackerSyncError(f"Failed to load vehicles: {_describe(e, self.config)}") from e

        logger.info(f"Starting {mode} sync: {len(pending)} devices against {len(vehicles)} vehicles")
        state = _RunState(mode=mode, vehicles=vehicles)
        outcomes: list[DeviceOutcome] = []
        discovered: list[DiscoveredDevice] = []

        try:
            for item in pending:
                if len(discovered) < self.config.discovered_sample_size:
                    discovered.append(DiscoveredDevice(plate=item.raw_plate, tracker_id=item.tracker_id))
                outcomes.append(await self._process(item, state))
        except asyncio.CancelledError:
            # applied mappings stay; keep what was done so far for the caller
            self.last_summary = build_summary(mode, outcomes, discovered)
            logger.warning(f"{mode} sync cancelled after {len(outcomes)}/{len(pending)} devices")
            raise

        summary = build_summary(mode, outcomes, discovered)
        self.last_summary = summary
        logger.info(
            f"Finished {mode} sync: matched={summary.matched} mappings={summary.upserted_mappings} "
            f"locations={summary.updated_locations} suggestions={len(summary.unmatched_suggestions)} "
            f"skipped={summary.skipped} errors={len(summary.errors)}"
        )
        return summary

    async def _process(self, item: PendingDevice, state: _RunState) -> DeviceOutcome:
        """Per-device fault isolation boundary."""
        try:
            return await self._process_device(item, state)
        except Exception as e:
            error = DeviceError(item.tracker_id, item.raw_plate, _describe(e, self.config))
            logger.warning(f"Device failed: {error}")
            return DeviceOutcome(item.tracker_id, item.raw_plate, OutcomeBucket.ERRORED, error=str(error))

    async def _process_device(self, item: PendingDevice, state: _RunState) -> DeviceOutcome:
        if item.complete:
            if item.tracker_id in state.seen_trackers:
                return DeviceOutcome(
                    item.tracker_id, item.raw_plate, OutcomeBucket.SKIPPED, skip_reason="duplicate_tracker"
                )
            state.seen_trackers.add(item.tracker_id)

        plate = normalize_plate(item.raw_plate)
        # decide() needs the runner-up to see ambiguity, whatever top_candidates is
        candidates = match_candidates(
            plate,
            state.vehicles,
            top_n=max(self.config.top_candidates, 2),
            fuzzy_floor=self.config.fuzzy_floor,
            region_tokens=self.config.region_tokens,
            min_digits=self.config.digits_subset_min_digits,
        )
        decision = decide(candidates, state.mode, pair_complete=item.complete, policy=self.policy)

        if isinstance(decision, AutoApply):
            decision = self._guard_auto_apply(decision, item, state, candidates)

        if isinstance(decision, Skip):
            logger.debug(f"Skipping {item.tracker_id} ({item.raw_plate!r}): {decision.reason}")
            return DeviceOutcome(item.tracker_id, item.raw_plate, OutcomeBucket.SKIPPED, skip_reason=decision.reason)

        if isinstance(decision, Suggest):
            suggestion = MatchSuggestion(
                device_plate=item.raw_plate,
                normalized_plate=plate.value,
                tracker_id=item.tracker_id or None,
                top_candidates=list(decision.candidates[: self.config.top_candidates]),
            )
            return DeviceOutcome(item.tracker_id, item.raw_plate, OutcomeBucket.SUGGESTED, suggestion=suggestion)

        return await self._apply(decision, item, state)

    def _guard_auto_apply(self, decision: AutoApply, item: PendingDevice, state: _RunState, candidates):
        """Demote an auto-apply that would steal a vehicle already linked this run, or exceed the cap."""
        vehicle_id = decision.candidate.vehicle_id
        holder = state.claimed_vehicles.get(vehicle_id)
        if holder is not None and holder != item.tracker_id:
            logger.info(f"Vehicle {vehicle_id} already linked to {holder} in this run; suggesting {item.tracker_id}")
            return Suggest(self._suggestable(candidates), reason="vehicle_already_claimed")

        cap = self.config.max_auto_matches
        if state.mode == "auto" and cap is not None and state.auto_applied >= cap:
            return Suggest(self._suggestable(candidates), reason="auto_match_cap")
        return decision

    def _suggestable(self, candidates) -> tuple:
        return tuple(c for c in candidates if c.score >= self.policy.suggestion_floor)

    async def _apply(self, decision: AutoApply, item: PendingDevice, state: _RunState) -> DeviceOutcome:
        """
        Write the mapping, then the location. Both are attempted even if the
        first fails; any failure marks the device errored with one message.
        """
        device = item.device
        candidate = decision.candidate
        bucket = OutcomeBucket.MAPPED_MANUAL if state.mode == "manual" else OutcomeBucket.MAPPED_AUTO
        outcome = DeviceOutcome(device.tracker_id, device.raw_plate, bucket, vehicle_id=candidate.vehicle_id)
        failures = []

        try:
            result = await self._bounded(
                self.repository.upsert_mapping(device.tracker_id, candidate.vehicle_id, state.mode)
            )
            outcome.mapping_created = result.created
            outcome.vehicle_updated = result.vehicle_updated
            state.claimed_vehicles[candidate.vehicle_id] = device.tracker_id
            if state.mode == "auto":
                state.auto_applied += 1
        except Exception as e:
            failures.append(f"mapping upsert failed: {_describe(e, self.config)}")

        if device.has_location:
            try:
                outcome.location_updated = await self._bounded(
                    self.repository.update_vehicle_location(
                        candidate.vehicle_id,
                        device.latitude,
                        device.longitude,
                        device.address,
                        device.reported_at,
                    )
                )
            except Exception as e:
                failures.append(f"location update failed: {_describe(e, self.config)}")

        if failures:
            error = DeviceError(device.tracker_id, device.raw_plate, "; ".join(failures))
            logger.warning(f"Device failed: {error}")
            outcome.bucket = OutcomeBucket.ERRORED
            outcome.error = str(error)
        return outcome

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, timeout=self.config.repository_timeout_seconds)


def _describe(e: Exception, config) -> str:
    if isinstance(e, TimeoutError):
        return f"timed out after {config.repository_timeout_seconds}s"
    return str(e) or type(e).__name__
