"""
Fold per-device outcomes into a SyncSummary, and render it as text.

Pure functions: no I/O, no side effects. Errors and suggestions keep the
order in which devices were processed.
"""

from dataclasses import dataclass
from enum import Enum

from trackersync.schemas.sync import DiscoveredDevice, MatchSuggestion, SyncMode, SyncSummary


class OutcomeBucket(str, Enum):
    MAPPED_AUTO = "mapped_auto"
    MAPPED_MANUAL = "mapped_manual"
    SUGGESTED = "suggested"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass
class DeviceOutcome:
    """What happened to one device during a run. Exactly one bucket."""

    tracker_id: str
    raw_plate: str
    bucket: OutcomeBucket
    vehicle_id: str | None = None
    mapping_created: bool = False
    vehicle_updated: bool = False
    location_updated: bool = False
    suggestion: MatchSuggestion | None = None
    skip_reason: str | None = None
    error: str | None = None

    @property
    def is_mapped(self) -> bool:
        return self.bucket in (OutcomeBucket.MAPPED_AUTO, OutcomeBucket.MAPPED_MANUAL)


def build_summary(
    mode: SyncMode,
    outcomes: list[DeviceOutcome],
    discovered: list[DiscoveredDevice] | None = None,
) -> SyncSummary:
    """
    matched / skipped come from the bucket; the write counters come from
    what the repository actually did, so an errored device whose mapping
    was written before its location update failed is still counted in
    upserted_mappings.
    """
    summary = SyncSummary(mode=mode, discovered_devices=list(discovered or []))
    for outcome in outcomes:
        if outcome.is_mapped:
            summary.matched += 1
        elif outcome.bucket in (OutcomeBucket.SKIPPED, OutcomeBucket.ERRORED):
            summary.skipped += 1
        elif outcome.bucket == OutcomeBucket.SUGGESTED and outcome.suggestion is not None:
            summary.unmatched_suggestions.append(outcome.suggestion)

        if outcome.bucket == OutcomeBucket.ERRORED and outcome.error:
            summary.errors.append(outcome.error)

        summary.upserted_mappings += int(outcome.mapping_created)
        summary.updated_vehicles += int(outcome.vehicle_updated)
        summary.updated_locations += int(outcome.location_updated)
    return summary


def format_summary_report(summary: SyncSummary, sample_size: int = 5) -> str:
    """Plain-text run report for operators to copy into a ticket or chat."""
    lines = [
        f"Tracker Sync Summary ({summary.mode})",
        f"- Matched: {summary.matched}",
        f"- Updated Vehicles: {summary.updated_vehicles}",
        f"- Upserted Mappings: {summary.upserted_mappings}",
        f"- Updated Locations: {summary.updated_locations}",
        f"- Skipped: {summary.skipped}",
        f"- Errors: {len(summary.errors)}",
        f"- Suggestions: {len(summary.unmatched_suggestions)}",
        f"- Discovered Devices: {len(summary.discovered_devices)}",
    ]

    if summary.errors:
        lines.append("")
        lines.append("Errors:")
        lines.extend(f"  {i}. {err}" for i, err in enumerate(summary.errors, 1))

    if summary.unmatched_suggestions:
        lines.append("")
        lines.append("Suggestions:")
        for s in summary.unmatched_suggestions:
            device = f"{s.device_plate} [{s.tracker_id}]" if s.tracker_id else s.device_plate
            lines.append(f"  {device} -> {s.normalized_plate or '(empty)'}")
            for c in s.top_candidates:
                lines.append(f"    {c.plate_number}  {c.score:.0%}  {c.reason.value}")

    if summary.discovered_devices:
        lines.append("")
        lines.append("Discovered Devices:")
        for d in summary.discovered_devices[:sample_size]:
            lines.append(f"  {d.plate} - {d.tracker_id}")
        remaining = len(summary.discovered_devices) - sample_size
        if remaining > 0:
            lines.append(f"  ... and {remaining} more")

    return "\n".join(lines)
