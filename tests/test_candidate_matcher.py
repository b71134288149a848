"""Tests for candidate scoring and ranking."""

import pytest

from trackersync.schemas.sync import MatchReason, VehicleRecord
from trackersync.services.candidate_matcher import match_candidates, score_plate
from trackersync.utils.plate_normalizer import normalize_plate


def _v(vehicle_id, plate):
    return VehicleRecord(vehicle_id=vehicle_id, plate_number=plate)


class TestScorePlate:
    def test_exact(self):
        assert score_plate(normalize_plate("أ ب ج-123"), normalize_plate("ABJ123")) == (1.0, MatchReason.EXACT_MATCH)

    def test_prefix_variant(self):
        score, reason = score_plate(normalize_plate("KSA ABJ 123"), normalize_plate("ABJ123"))
        assert reason == MatchReason.PREFIX_VARIANT
        assert score == 0.9

    def test_fuzzy(self):
        score, reason = score_plate(normalize_plate("ABJ129"), normalize_plate("ABJ123"))
        assert reason == MatchReason.FUZZY_MATCH
        assert score == pytest.approx(5 / 6)

    def test_digits_subset(self):
        score, reason = score_plate(normalize_plate("4521"), normalize_plate("XDR 4521"))
        assert reason == MatchReason.DIGITS_SUBSET
        assert score == 0.7

    def test_digits_subset_requires_min_digits(self):
        assert score_plate(normalize_plate("45"), normalize_plate("XDR 4521"), min_digits=3) is None

    def test_best_rule_wins(self):
        # both fuzzy (6/7) and digits_subset (0.7) qualify
        score, reason = score_plate(normalize_plate("XDR452"), normalize_plate("XDR4521"))
        assert reason == MatchReason.FUZZY_MATCH
        assert score == pytest.approx(6 / 7)

    def test_no_rule_qualifies(self):
        assert score_plate(normalize_plate("QQQ999"), normalize_plate("ABJ123")) is None

    def test_empty_never_matches(self):
        assert score_plate(normalize_plate(""), normalize_plate("ABJ123")) is None
        assert score_plate(normalize_plate("ABJ123"), normalize_plate("")) is None


class TestMatchCandidates:
    def test_non_qualifying_vehicles_excluded(self, vehicles):
        candidates = match_candidates(normalize_plate("ABJ123"), vehicles)
        assert [c.vehicle_id for c in candidates] == ["v-001"]
        assert candidates[0].score == 1.0
        assert candidates[0].reason == MatchReason.EXACT_MATCH

    def test_sorted_by_score_desc(self):
        fleet = [_v("a", "ABJ128"), _v("b", "ABJ123"), _v("c", "ZZ 1234")]
        candidates = match_candidates(normalize_plate("ABJ123"), fleet)
        assert candidates[0].vehicle_id == "b"
        assert [c.score for c in candidates] == sorted((c.score for c in candidates), reverse=True)

    def test_tie_broken_by_length_difference_then_id(self):
        fleet = [_v("v9", "ABJ128"), _v("v2", "ABJ123"), _v("v1", "ABJ1234")]
        candidates = match_candidates(normalize_plate("ABJ129"), fleet)
        # ABJ123 / ABJ128 tie at 5/6 with equal length; id order decides
        assert [c.vehicle_id for c in candidates[:2]] == ["v2", "v9"]

    def test_capped_at_top_n(self):
        fleet = [_v(f"v{i}", f"ABJ12{i}") for i in range(10)]
        assert len(match_candidates(normalize_plate("ABJ12X"), fleet)) == 3
        assert len(match_candidates(normalize_plate("ABJ12X"), fleet, top_n=5)) == 5

    def test_fuzzy_floor_configurable(self):
        fleet = [_v("a", "ABJ123")]
        assert match_candidates(normalize_plate("ABX193"), fleet, fuzzy_floor=0.6)
        assert not match_candidates(normalize_plate("ABX193"), fleet, fuzzy_floor=0.9, min_digits=10)

    def test_empty_device_plate(self, vehicles):
        assert match_candidates(normalize_plate("  "), vehicles) == []

    def test_vehicle_plates_normalized_before_compare(self):
        fleet = [_v("a", "abj-123")]
        candidates = match_candidates(normalize_plate("ABJ 123"), fleet)
        assert candidates[0].reason == MatchReason.EXACT_MATCH
        assert candidates[0].plate_number == "abj-123"
