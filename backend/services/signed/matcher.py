"""
Work Order Hub - Signed Work Order Matcher

Finds the open work order a signed document belongs to.

Match tiers, first hit wins:
1. EXACT: normalized candidate equals the normalized work order number
2. FUZZY: one normalized value contains the other and the shorter is at
   least FUZZY_MIN_LENGTH_RATIO of the longer
3. no match

When several work orders hit the same tier, the most recently
created/scheduled one wins; remaining ties keep input order.

Pure: no I/O, inputs are not modified.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from . import config
from .models import MatchResult, WorkOrderRecord
from .normalizer import fm_key_scope, normalize

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO strings, datetimes (as stored by Mongo) and dates; naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recency_key(work_order: WorkOrderRecord) -> datetime:
    """Latest of created_at / scheduled_date; records without either sort oldest."""
    stamps = [
        ts for ts in (
            _parse_timestamp(work_order.created_at),
            _parse_timestamp(work_order.scheduled_date),
        ) if ts is not None
    ]
    return max(stamps) if stamps else _EPOCH


def is_fuzzy_match(candidate: str, number: str, min_ratio: float = None) -> bool:
    """Substring match in either direction, guarded by length ratio."""
    if not candidate or not number:
        return False
    min_ratio = config.FUZZY_MIN_LENGTH_RATIO if min_ratio is None else min_ratio
    shorter, longer = sorted((candidate, number), key=len)
    if shorter not in longer:
        return False
    return len(shorter) / len(longer) >= min_ratio


def _in_scope(work_order: WorkOrderRecord, scope_key: Optional[str]) -> bool:
    if not work_order.is_open:
        return False
    if scope_key is None:
        return True
    return fm_key_scope(work_order.fm_key) == scope_key


def _pick_most_recent(hits: List[WorkOrderRecord]) -> WorkOrderRecord:
    best = hits[0]
    best_key = recency_key(best)
    for work_order in hits[1:]:
        key = recency_key(work_order)
        if key > best_key:
            best, best_key = work_order, key
    return best


def find_best_match(
    candidate_number: Optional[str],
    fm_key: Optional[str],
    open_work_orders: Iterable[WorkOrderRecord],
    min_ratio: float = None,
) -> Optional[MatchResult]:
    """
    Select the best open work order for a candidate number.

    Args:
        candidate_number: Raw extracted work order number
        fm_key: Issuer key; when set, only work orders with the same key are searched
        open_work_orders: Candidate corpus, in a stable caller-defined order
        min_ratio: Override for the fuzzy length-ratio guard

    Returns:
        MatchResult, or None when nothing matches
    """
    candidate = normalize(candidate_number)
    if not candidate:
        return None

    scope_key = fm_key_scope(fm_key)
    exact_hits: List[WorkOrderRecord] = []
    fuzzy_hits: List[WorkOrderRecord] = []

    for work_order in open_work_orders:
        if not _in_scope(work_order, scope_key):
            continue
        number = normalize(work_order.work_order_number)
        if not number:
            continue
        if number == candidate:
            exact_hits.append(work_order)
        elif not exact_hits and is_fuzzy_match(candidate, number, min_ratio):
            fuzzy_hits.append(work_order)

    if exact_hits:
        chosen = _pick_most_recent(exact_hits)
        logger.debug(
            "Exact match for %s: work order %s (%d candidates)",
            candidate, chosen.id, len(exact_hits)
        )
        return MatchResult(work_order=chosen, exact=True)

    if fuzzy_hits:
        chosen = _pick_most_recent(fuzzy_hits)
        logger.debug(
            "Fuzzy match for %s: work order %s (%d candidates)",
            candidate, chosen.id, len(fuzzy_hits)
        )
        return MatchResult(work_order=chosen, exact=False)

    return None


def describe_match(match: Optional[MatchResult]) -> Tuple[Optional[str], str]:
    """(work_order_id, tier) for logging."""
    if match is None:
        return None, "none"
    return match.work_order.id, match.tier.value
