"""
Work Order Hub - Review Reason Hints

Human-facing title/message/tone for each decision reason code, so review
screens can explain an item without re-deriving the decision.
"""

from typing import Dict

from .decision_engine import ReasonCode

_REVIEW_UX: Dict[str, Dict[str, str]] = {
    ReasonCode.HIGH_CONFIDENCE_NO_MATCH: {
        "title": "Work order not found",
        "message": "The number was read clearly but no open work order for this issuer has it. "
                   "Ingest the original work order first, then resolve.",
        "tone": "danger",
    },
    ReasonCode.MEDIUM_CONFIDENCE_NO_MATCH: {
        "title": "Work order not found - please verify",
        "message": "No open work order matches the extracted number. Check the number or enter it manually.",
        "tone": "warning",
    },
    ReasonCode.FUZZY_MEDIUM_CONFIDENCE: {
        "title": "Close match - please confirm",
        "message": "The extracted number partially matches an open work order. Confirm it is the right one.",
        "tone": "info",
    },
    ReasonCode.LOW_CONFIDENCE: {
        "title": "Document quality - please verify",
        "message": "A matching work order exists but the scan was hard to read. Confirm the number.",
        "tone": "info",
    },
    ReasonCode.LOW_CONFIDENCE_FUZZY: {
        "title": "Verification required",
        "message": "The scan was hard to read and only partially matches a work order. Enter the number manually.",
        "tone": "warning",
    },
    ReasonCode.LOW_CONFIDENCE_NO_MATCH: {
        "title": "Work order number not detected",
        "message": "No reliable work order number was found. Use the raw text and snippet to enter it manually.",
        "tone": "warning",
    },
}

_FALLBACK = {
    "title": "Verification",
    "message": "This item needs verification.",
    "tone": "info",
}


def get_review_ux(reason_code: str) -> Dict[str, str]:
    """UX hints for a reason code; unknown codes get a generic hint."""
    return dict(_REVIEW_UX.get(reason_code, _FALLBACK))
