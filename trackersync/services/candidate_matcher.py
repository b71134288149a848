"""
Score a device plate against every fleet vehicle and rank the candidates.

Rules (best qualifying rule per vehicle wins):
1. exact normalized equality            -> 1.0  exact_match
2. equal once regional tokens removed   -> 0.9  prefix_variant
3. normalized Levenshtein >= floor      -> sim  fuzzy_match
4. device digits in order in vehicle    -> 0.7  digits_subset

Vehicles that qualify under no rule are left out entirely.
"""

import logging
from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from trackersync.schemas.sync import MatchCandidate, MatchReason, VehicleRecord
from trackersync.utils.plate_normalizer import NormalizedPlate, normalize_plate, strip_region_tokens

logger = logging.getLogger(__name__)

EXACT_SCORE = 1.0
PREFIX_VARIANT_SCORE = 0.9
DIGITS_SUBSET_SCORE = 0.7

DEFAULT_TOP_N = 3
DEFAULT_FUZZY_FLOOR = 0.6
DEFAULT_MIN_DIGITS = 3
DEFAULT_REGION_TOKENS = ("KSA", "SA", "SAU", "UAE", "AE", "KW", "KWT", "QA", "QAT", "BH", "BHR", "OM", "OMN")


def _is_subsequence(needle: str, haystack: str) -> bool:
    it = iter(haystack)
    return all(ch in it for ch in needle)


def score_plate(
    device: NormalizedPlate,
    vehicle: NormalizedPlate,
    fuzzy_floor: float = DEFAULT_FUZZY_FLOOR,
    region_tokens: Iterable[str] = DEFAULT_REGION_TOKENS,
    min_digits: int = DEFAULT_MIN_DIGITS,
) -> tuple[float, MatchReason] | None:
    """Best (score, reason) for one pair of normalized plates, or None."""
    if device.is_empty or vehicle.is_empty:
        return None

    if device.value == vehicle.value:
        return EXACT_SCORE, MatchReason.EXACT_MATCH

    qualifying: list[tuple[float, MatchReason]] = []

    device_core = strip_region_tokens(device, region_tokens)
    vehicle_core = strip_region_tokens(vehicle, region_tokens)
    if device_core and device_core == vehicle_core:
        qualifying.append((PREFIX_VARIANT_SCORE, MatchReason.PREFIX_VARIANT))

    similarity = Levenshtein.normalized_similarity(device.value, vehicle.value)
    if similarity >= fuzzy_floor:
        qualifying.append((similarity, MatchReason.FUZZY_MATCH))

    device_digits = device.digits
    if len(device_digits) >= max(min_digits, 1) and _is_subsequence(device_digits, vehicle.digits):
        qualifying.append((DIGITS_SUBSET_SCORE, MatchReason.DIGITS_SUBSET))

    if not qualifying:
        return None
    # max() keeps the first of equal scores, i.e. the earlier rule
    return max(qualifying, key=lambda q: q[0])


def match_candidates(
    device_plate: NormalizedPlate,
    vehicles: Iterable[VehicleRecord],
    top_n: int = DEFAULT_TOP_N,
    fuzzy_floor: float = DEFAULT_FUZZY_FLOOR,
    region_tokens: Iterable[str] = DEFAULT_REGION_TOKENS,
    min_digits: int = DEFAULT_MIN_DIGITS,
) -> list[MatchCandidate]:
    """
    Rank vehicles for a device plate.

    Sorted by score desc, then plate length difference asc, then
    vehicle_id asc. At most top_n candidates are returned.
    """
    if device_plate.is_empty:
        return []

    region_tokens = tuple(region_tokens)
    scored: list[tuple[float, int, str, MatchCandidate]] = []
    for vehicle in vehicles:
        vehicle_plate = normalize_plate(vehicle.plate_number)
        result = score_plate(device_plate, vehicle_plate, fuzzy_floor, region_tokens, min_digits)
        if result is None:
            continue
        score, reason = result
        candidate = MatchCandidate(
            vehicle_id=vehicle.vehicle_id,
            plate_number=vehicle.plate_number,
            score=round(score, 4),
            reason=reason,
        )
        length_gap = abs(len(vehicle_plate.value) - len(device_plate.value))
        scored.append((-candidate.score, length_gap, vehicle.vehicle_id, candidate))

    scored.sort(key=lambda s: s[:3])
    ranked = [s[3] for s in scored[: max(top_n, 0)]]
    logger.debug(f"Plate {device_plate.value} -> {len(ranked)} candidate(s)")
    return ranked
