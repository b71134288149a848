"""Tests for summary aggregation and the text report."""

from trackersync.schemas.sync import DiscoveredDevice, MatchCandidate, MatchReason, MatchSuggestion
from trackersync.services.summary import DeviceOutcome, OutcomeBucket, build_summary, format_summary_report


def _suggestion(tracker_id="TRK009"):
    return MatchSuggestion(
        device_plate="ABJ129",
        normalized_plate="ABJ129",
        tracker_id=tracker_id,
        top_candidates=[
            MatchCandidate(vehicle_id="v-1", plate_number="ABJ123", score=0.8333, reason=MatchReason.FUZZY_MATCH),
            MatchCandidate(vehicle_id="v-2", plate_number="ABJ128", score=0.8333, reason=MatchReason.FUZZY_MATCH),
        ],
    )


class TestBuildSummary:
    def test_counts_by_bucket(self):
        outcomes = [
            DeviceOutcome("T1", "ABJ123", OutcomeBucket.MAPPED_AUTO, "v-1", mapping_created=True, vehicle_updated=True),
            DeviceOutcome("T2", "XDR4521", OutcomeBucket.MAPPED_AUTO, "v-2", location_updated=True),
            DeviceOutcome("T3", "ABJ129", OutcomeBucket.SUGGESTED, suggestion=_suggestion("T3")),
            DeviceOutcome("T4", "QQQ", OutcomeBucket.SKIPPED, skip_reason="no_candidates"),
            DeviceOutcome("T5", "KLN7788", OutcomeBucket.ERRORED, error="T5 (plate: KLN7788): boom"),
        ]
        summary = build_summary("auto", outcomes)

        assert summary.matched == 2
        assert summary.upserted_mappings == 1
        assert summary.updated_vehicles == 1
        assert summary.updated_locations == 1
        assert summary.skipped == 2
        assert summary.errors == ["T5 (plate: KLN7788): boom"]
        assert [s.tracker_id for s in summary.unmatched_suggestions] == ["T3"]

    def test_errored_device_keeps_write_counters(self):
        outcome = DeviceOutcome(
            "T1", "ABJ123", OutcomeBucket.ERRORED, "v-1", mapping_created=True, error="T1 (plate: ABJ123): x"
        )
        summary = build_summary("auto", [outcome])
        assert summary.matched == 0
        assert summary.upserted_mappings == 1
        assert summary.skipped == 1

    def test_errors_keep_processing_order(self):
        outcomes = [
            DeviceOutcome(f"T{i}", "P", OutcomeBucket.ERRORED, error=f"T{i} failed") for i in (3, 1, 2)
        ]
        assert build_summary("manual", outcomes).errors == ["T3 failed", "T1 failed", "T2 failed"]

    def test_empty_run(self):
        summary = build_summary("manual", [])
        assert summary.mode == "manual"
        assert summary.matched == summary.skipped == 0
        assert summary.discovered_devices == []

    def test_camel_case_serialization(self):
        summary = build_summary("auto", [DeviceOutcome("T3", "ABJ129", OutcomeBucket.SUGGESTED, suggestion=_suggestion())])
        data = summary.model_dump(by_alias=True)
        assert "upsertedMappings" in data
        suggestion = data["unmatchedSuggestions"][0]
        assert suggestion["devicePlate"] == "ABJ129"
        assert suggestion["topCandidates"][0]["plate"] == "ABJ123"
        assert suggestion["topCandidates"][0]["vehicleId"] == "v-1"


class TestFormatSummaryReport:
    def test_counts_and_sections(self):
        outcomes = [
            DeviceOutcome("T1", "ABJ123", OutcomeBucket.MAPPED_AUTO, "v-1", mapping_created=True),
            DeviceOutcome("T3", "ABJ129", OutcomeBucket.SUGGESTED, suggestion=_suggestion()),
            DeviceOutcome("T5", "KLN7788", OutcomeBucket.ERRORED, error="T5 (plate: KLN7788): boom"),
        ]
        report = format_summary_report(build_summary("auto", outcomes))

        assert report.startswith("Tracker Sync Summary (auto)")
        assert "- Matched: 1" in report
        assert "- Upserted Mappings: 1" in report
        assert "- Errors: 1" in report
        assert "  1. T5 (plate: KLN7788): boom" in report
        assert "ABJ129 [TRK009] -> ABJ129" in report
        assert "ABJ123  83%  fuzzy_match" in report

    def test_discovered_devices_truncated(self):
        discovered = [DiscoveredDevice(plate=f"P{i}", tracker_id=f"T{i}") for i in range(8)]
        report = format_summary_report(build_summary("auto", [], discovered))

        assert "- Discovered Devices: 8" in report
        assert "  P0 - T0" in report
        assert "  P4 - T4" in report
        assert "P5 - T5" not in report
        assert "... and 3 more" in report

    def test_no_optional_sections_when_clean(self):
        report = format_summary_report(build_summary("manual", []))
        assert "\nErrors:" not in report
        assert "\nSuggestions:" not in report
        assert "\nDiscovered Devices:" not in report
