"""
Work Order Hub - Work Order Number Normalization

Canonical form used for every comparison between an extracted candidate
and a stored work order number: lowercase, trimmed, alphanumerics only.

    "WO-12345"   -> "wo12345"
    " wo 12 345" -> "wo12345"
    "#--"        -> ""

An empty normalized value never matches anything.
"""

import re
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_FM_KEY = re.compile(r"[^a-z0-9_]")


def normalize(raw: Optional[str]) -> str:
    """Normalize a work order number. Total: None and non-strings give ""."""
    if not raw or not isinstance(raw, str):
        return ""
    return _NON_ALNUM.sub("", raw.strip().lower())


def normalize_fm_key(fm_key: Optional[str]) -> Optional[str]:
    """
    Normalize an issuer key so "Service Channel" and "service_channel"
    scope to the same work orders. Blank keys become None (unscoped).
    """
    if not fm_key or not isinstance(fm_key, str):
        return None
    normalized = _NON_FM_KEY.sub("_", fm_key.strip().lower())
    return normalized or None


def fm_key_scope(fm_key: Optional[str]) -> Optional[str]:
    """
    Comparison form of an issuer key. Underscores are dropped as well, so
    "ServiceChannel", "Service Channel" and "service_channel" all scope to
    "servicechannel". None means unscoped.
    """
    normalized = normalize_fm_key(fm_key)
    if normalized is None:
        return None
    return normalized.replace("_", "") or None
