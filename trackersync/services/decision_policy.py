"""
Turn ranked candidates into one of three decisions: AutoApply, Suggest, Skip.

Nothing is auto-applied unless the top candidate clears the threshold and
no runner-up sits within the ambiguity margin. In manual mode an operator
has already asserted the pairing, so a unique exact match always applies.
"""

from dataclasses import dataclass, field

from trackersync.schemas.sync import MatchCandidate, MatchReason, SyncMode

DEFAULT_AUTO_APPLY_THRESHOLD = 0.95
DEFAULT_AMBIGUITY_MARGIN = 0.05
DEFAULT_SUGGESTION_FLOOR = 0.6


@dataclass(frozen=True)
class DecisionPolicy:
    auto_apply_threshold: float = DEFAULT_AUTO_APPLY_THRESHOLD
    ambiguity_margin: float = DEFAULT_AMBIGUITY_MARGIN
    suggestion_floor: float = DEFAULT_SUGGESTION_FLOOR

    @classmethod
    def from_settings(cls, settings) -> "DecisionPolicy":
        return cls(
            auto_apply_threshold=settings.auto_apply_threshold,
            ambiguity_margin=settings.ambiguity_margin,
            suggestion_floor=settings.suggestion_floor,
        )


@dataclass(frozen=True)
class AutoApply:
    candidate: MatchCandidate
    operator_confirmed: bool = False


@dataclass(frozen=True)
class Suggest:
    candidates: tuple[MatchCandidate, ...] = field(default_factory=tuple)
    reason: str = "below_threshold"


@dataclass(frozen=True)
class Skip:
    reason: str


Decision = AutoApply | Suggest | Skip


def _is_ambiguous(candidates: list[MatchCandidate], margin: float) -> bool:
    if len(candidates) < 2:
        return False
    # small epsilon so a gap of exactly the margin still counts as ambiguous
    return candidates[0].score - candidates[1].score <= margin + 1e-9


def decide(
    candidates: list[MatchCandidate],
    mode: SyncMode,
    pair_complete: bool = True,
    policy: DecisionPolicy = DecisionPolicy(),
) -> Decision:
    """Classify ranked candidates (highest score first)."""
    if mode == "manual" and not pair_complete:
        return Skip("incomplete_pair")
    if not candidates:
        return Skip("no_candidates")

    top = candidates[0]
    if top.score < policy.suggestion_floor:
        return Skip("below_suggestion_floor")

    if mode == "manual" and top.reason == MatchReason.EXACT_MATCH:
        exact = [c for c in candidates if c.reason == MatchReason.EXACT_MATCH]
        if len(exact) == 1:
            return AutoApply(top, operator_confirmed=True)

    suggestable = tuple(c for c in candidates if c.score >= policy.suggestion_floor)
    if top.score >= policy.auto_apply_threshold:
        if _is_ambiguous(candidates, policy.ambiguity_margin):
            return Suggest(suggestable, reason="ambiguous")
        return AutoApply(top)
    return Suggest(suggestable)
