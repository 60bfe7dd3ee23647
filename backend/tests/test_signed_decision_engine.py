"""
Tests for the Signed Document Decision Engine

The policy table must be exhaustive, deterministic and match the
documented confidence x match matrix exactly.
"""
import math

import pytest

from services.signed.decision_engine import (
    DECISION_TABLE, ReasonCode, coerce_confidence, decide, tier_for_confidence
)
from services.signed.matcher import find_best_match
from services.signed.models import (
    ConfidenceTier, DispositionOutcome, Extraction, MatchResult, MatchTier, WorkOrderRecord
)


# =============================================================================
# MOCK DATA
# =============================================================================

WORK_ORDER = WorkOrderRecord(id="42", work_order_number="WO-12345", fm_key="servicechannel", workspace_id="ws1")

CONFIDENCE_FOR_TIER = {
    ConfidenceTier.HIGH: 0.95,
    ConfidenceTier.MEDIUM: 0.75,
    ConfidenceTier.LOW: 0.30,
}

EXPECTED = [
    (ConfidenceTier.HIGH, MatchTier.EXACT, DispositionOutcome.AUTO_MATCH),
    (ConfidenceTier.HIGH, MatchTier.FUZZY, DispositionOutcome.AUTO_MATCH),
    (ConfidenceTier.HIGH, MatchTier.NONE, DispositionOutcome.AUTO_CREATE_REVIEW),
    (ConfidenceTier.MEDIUM, MatchTier.EXACT, DispositionOutcome.AUTO_MATCH),
    (ConfidenceTier.MEDIUM, MatchTier.FUZZY, DispositionOutcome.AUTO_CREATE_REVIEW),
    (ConfidenceTier.MEDIUM, MatchTier.NONE, DispositionOutcome.AUTO_CREATE_REVIEW),
    (ConfidenceTier.LOW, MatchTier.EXACT, DispositionOutcome.AUTO_CREATE_REVIEW),
    (ConfidenceTier.LOW, MatchTier.FUZZY, DispositionOutcome.MANUAL_REVIEW),
    (ConfidenceTier.LOW, MatchTier.NONE, DispositionOutcome.MANUAL_REVIEW),
]


def match_for(tier):
    if tier == MatchTier.NONE:
        return None
    return MatchResult(work_order=WORK_ORDER, exact=(tier == MatchTier.EXACT))


class TestConfidenceTiers:
    """Tests for confidence coercion and tiering."""

    @pytest.mark.parametrize("value,tier", [
        (1.0, ConfidenceTier.HIGH),
        (0.90, ConfidenceTier.HIGH),
        (0.8999, ConfidenceTier.MEDIUM),
        (0.60, ConfidenceTier.MEDIUM),
        (0.5999, ConfidenceTier.LOW),
        (0.0, ConfidenceTier.LOW),
        ("0.95", ConfidenceTier.HIGH),
    ])
    def test_boundaries(self, value, tier):
        """Test confidence tier boundaries."""
        assert tier_for_confidence(value) == tier

    @pytest.mark.parametrize("value", [None, float("nan"), "high", -0.1, 1.5, True, [], {}])
    def test_garbage_is_low(self, value):
        """Test unusable confidence values are LOW."""
        assert coerce_confidence(value) == 0.0
        assert tier_for_confidence(value) == ConfidenceTier.LOW

    def test_monotonic(self):
        """Test higher confidence never gives a lower tier."""
        order = {ConfidenceTier.LOW: 0, ConfidenceTier.MEDIUM: 1, ConfidenceTier.HIGH: 2}
        values = [i / 100 for i in range(100, -1, -1)]
        ranks = [order[tier_for_confidence(v)] for v in values]
        assert ranks == sorted(ranks, reverse=True)

    def test_coerce_keeps_valid_numbers(self):
        """Test valid confidence numbers are kept."""
        assert math.isclose(coerce_confidence(0.42), 0.42)
        assert coerce_confidence(1) == 1.0


class TestDecisionTable:
    """The policy table itself."""

    def test_table_is_exhaustive(self):
        """Test the decision table covers every tier pair."""
        for confidence_tier in ConfidenceTier:
            for match_tier in MatchTier:
                outcome, reason = DECISION_TABLE[confidence_tier][match_tier]
                assert isinstance(outcome, DispositionOutcome)
                assert reason

    @pytest.mark.parametrize("confidence_tier,match_tier,outcome", EXPECTED)
    def test_decide_follows_table(self, confidence_tier, match_tier, outcome):
        """Test decide returns the table outcome."""
        extraction = Extraction(candidate_number="WO-12345", confidence=CONFIDENCE_FOR_TIER[confidence_tier])
        decision = decide(extraction, match_for(match_tier))

        assert decision.outcome == outcome
        assert decision.reason_code
        assert decision.confidence_tier == confidence_tier
        assert decision.match_tier == match_tier

    @pytest.mark.parametrize("confidence_tier,match_tier,outcome", EXPECTED)
    def test_matched_id_only_on_auto_match(self, confidence_tier, match_tier, outcome):
        """Test a matched id is set only for AUTO_MATCH."""
        extraction = Extraction(candidate_number="WO-12345", confidence=CONFIDENCE_FOR_TIER[confidence_tier])
        decision = decide(extraction, match_for(match_tier))

        if outcome == DispositionOutcome.AUTO_MATCH:
            assert decision.matched_work_order_id == "42"
            assert not decision.needs_review
        else:
            assert decision.matched_work_order_id is None
            assert decision.needs_review

    def test_deterministic(self):
        """Test the same inputs give the same decision."""
        extraction = Extraction(candidate_number="WO-12345", confidence=0.75)
        assert decide(extraction, match_for(MatchTier.FUZZY)) == decide(extraction, match_for(MatchTier.FUZZY))

    def test_named_reason_codes(self):
        """Test the named reason codes."""
        assert DECISION_TABLE[ConfidenceTier.HIGH][MatchTier.NONE][1] == "high-confidence-no-match"
        assert DECISION_TABLE[ConfidenceTier.MEDIUM][MatchTier.FUZZY][1] == "fuzzy-medium-confidence"
        assert DECISION_TABLE[ConfidenceTier.MEDIUM][MatchTier.NONE][1] == "medium-confidence-no-match"
        assert DECISION_TABLE[ConfidenceTier.LOW][MatchTier.EXACT][1] == "low-confidence"
        assert DECISION_TABLE[ConfidenceTier.LOW][MatchTier.FUZZY][1] == "low-confidence-fuzzy"
        assert DECISION_TABLE[ConfidenceTier.LOW][MatchTier.NONE][1] == "low-confidence-no-match"


class TestScenarios:
    """End-to-end matcher + decision scenarios."""

    def test_high_confidence_exact(self):
        """Test high confidence exact match auto-matches."""
        orders = [WORK_ORDER]
        extraction = Extraction(candidate_number="WO-12345", confidence=0.95)
        decision = decide(extraction, find_best_match(extraction.candidate_number, "servicechannel", orders))

        assert decision.outcome == DispositionOutcome.AUTO_MATCH
        assert decision.matched_work_order_id == "42"

    def test_high_confidence_no_match(self):
        """Test high confidence without a match creates a review."""
        extraction = Extraction(candidate_number="WO-99999", confidence=0.92)
        decision = decide(extraction, find_best_match("WO-99999", "servicechannel", [WORK_ORDER]))

        assert decision.outcome == DispositionOutcome.AUTO_CREATE_REVIEW
        assert decision.reason_code == ReasonCode.HIGH_CONFIDENCE_NO_MATCH

    def test_low_confidence_fuzzy(self):
        """Test low confidence fuzzy match goes to manual review."""
        orders = [WorkOrderRecord(id="7", work_order_number="WO-1234X", fm_key="servicechannel")]
        extraction = Extraction(candidate_number="WO-123", confidence=0.55)
        decision = decide(extraction, find_best_match("WO-123", "servicechannel", orders))

        assert decision.outcome == DispositionOutcome.MANUAL_REVIEW
        assert decision.reason_code == ReasonCode.LOW_CONFIDENCE_FUZZY

    def test_no_candidate(self):
        """Test a missing candidate goes to manual review."""
        extraction = Extraction(candidate_number=None, confidence=0.10, raw_text="illegible scrawl")
        decision = decide(extraction, find_best_match(None, "servicechannel", [WORK_ORDER]))

        assert decision.outcome == DispositionOutcome.MANUAL_REVIEW
        assert decision.reason_code == ReasonCode.LOW_CONFIDENCE_NO_MATCH
