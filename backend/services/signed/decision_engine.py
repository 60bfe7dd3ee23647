"""
Work Order Hub - Signed Document Decision Engine

Maps (confidence tier, match tier) to a disposition. The policy lives in
DECISION_TABLE and nowhere else; `decide` only looks it up.

|        | exact match                  | fuzzy match                          | no match                                  |
|--------|------------------------------|--------------------------------------|-------------------------------------------|
| HIGH   | AUTO_MATCH                   | AUTO_MATCH                           | AUTO_CREATE_REVIEW high-confidence-no-match |
| MEDIUM | AUTO_MATCH                   | AUTO_CREATE_REVIEW fuzzy-medium-...  | AUTO_CREATE_REVIEW medium-confidence-no-match |
| LOW    | AUTO_CREATE_REVIEW low-conf. | MANUAL_REVIEW low-confidence-fuzzy   | MANUAL_REVIEW low-confidence-no-match     |

No direct HTTP or DB calls.
"""

import math
import logging
from typing import Any, Dict, Optional, Tuple

from . import config
from .models import (
    ConfidenceTier, Decision, DispositionOutcome, Extraction, MatchResult, MatchTier
)

logger = logging.getLogger(__name__)


# =============================================================================
# REASON CODES
# =============================================================================

class ReasonCode:
    HIGH_CONFIDENCE_EXACT = "high-confidence-exact"
    HIGH_CONFIDENCE_FUZZY = "high-confidence-fuzzy"
    HIGH_CONFIDENCE_NO_MATCH = "high-confidence-no-match"
    MEDIUM_CONFIDENCE_EXACT = "medium-confidence-exact"
    FUZZY_MEDIUM_CONFIDENCE = "fuzzy-medium-confidence"
    MEDIUM_CONFIDENCE_NO_MATCH = "medium-confidence-no-match"
    LOW_CONFIDENCE = "low-confidence"
    LOW_CONFIDENCE_FUZZY = "low-confidence-fuzzy"
    LOW_CONFIDENCE_NO_MATCH = "low-confidence-no-match"


# =============================================================================
# POLICY TABLE
# =============================================================================

# Format: {confidence_tier: {match_tier: (outcome, reason_code)}}
DECISION_TABLE: Dict[ConfidenceTier, Dict[MatchTier, Tuple[DispositionOutcome, str]]] = {
    ConfidenceTier.HIGH: {
        MatchTier.EXACT: (DispositionOutcome.AUTO_MATCH, ReasonCode.HIGH_CONFIDENCE_EXACT),
        MatchTier.FUZZY: (DispositionOutcome.AUTO_MATCH, ReasonCode.HIGH_CONFIDENCE_FUZZY),
        MatchTier.NONE: (DispositionOutcome.AUTO_CREATE_REVIEW, ReasonCode.HIGH_CONFIDENCE_NO_MATCH),
    },
    ConfidenceTier.MEDIUM: {
        MatchTier.EXACT: (DispositionOutcome.AUTO_MATCH, ReasonCode.MEDIUM_CONFIDENCE_EXACT),
        MatchTier.FUZZY: (DispositionOutcome.AUTO_CREATE_REVIEW, ReasonCode.FUZZY_MEDIUM_CONFIDENCE),
        MatchTier.NONE: (DispositionOutcome.AUTO_CREATE_REVIEW, ReasonCode.MEDIUM_CONFIDENCE_NO_MATCH),
    },
    ConfidenceTier.LOW: {
        MatchTier.EXACT: (DispositionOutcome.AUTO_CREATE_REVIEW, ReasonCode.LOW_CONFIDENCE),
        MatchTier.FUZZY: (DispositionOutcome.MANUAL_REVIEW, ReasonCode.LOW_CONFIDENCE_FUZZY),
        MatchTier.NONE: (DispositionOutcome.MANUAL_REVIEW, ReasonCode.LOW_CONFIDENCE_NO_MATCH),
    },
}


# =============================================================================
# CONFIDENCE
# =============================================================================

def coerce_confidence(value: Any) -> float:
    """Numeric confidence in [0, 1]; anything else (None, NaN, strings, out of range) is 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or number < 0.0 or number > 1.0:
        return 0.0
    return number


def tier_for_confidence(value: Any) -> ConfidenceTier:
    confidence = coerce_confidence(value)
    if confidence >= config.HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceTier.HIGH
    if confidence >= config.MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


# =============================================================================
# DECISION
# =============================================================================

def decide(extraction: Extraction, match: Optional[MatchResult]) -> Decision:
    """
    Decide what to do with a signed document.

    Args:
        extraction: OCR output for the document
        match: Matcher result, or None when nothing matched

    Returns:
        Decision with outcome, matched work order (AUTO_MATCH only) and reason code
    """
    confidence_tier = tier_for_confidence(extraction.confidence)
    match_tier = match.tier if match is not None else MatchTier.NONE

    outcome, reason_code = DECISION_TABLE[confidence_tier][match_tier]

    matched_id = None
    if outcome == DispositionOutcome.AUTO_MATCH:
        matched_id = match.work_order.id

    logger.info(
        "Signed decision: outcome=%s, reason=%s, tier=%s, match=%s, work_order=%s",
        outcome.value, reason_code, confidence_tier.value, match_tier.value, matched_id
    )

    return Decision(
        outcome=outcome,
        matched_work_order_id=matched_id,
        reason_code=reason_code,
        confidence_tier=confidence_tier,
        match_tier=match_tier,
    )
