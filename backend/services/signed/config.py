"""
Work Order Hub - Signed Document Configuration

All tunables for signed-document matching are read from environment
variables once at import time. The server loads `.env` before importing
this module.

Confidence tiers:
- HIGH:   confidence >= SIGNED_HIGH_CONFIDENCE_THRESHOLD   (default 0.90)
- MEDIUM: confidence >= SIGNED_MEDIUM_CONFIDENCE_THRESHOLD (default 0.60)
- LOW:    anything else, including missing or non-numeric values
"""

import os
import logging

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using default %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid int for %s=%r, using default %s", name, raw, default)
        return default


# =============================================================================
# CONFIDENCE TIERS
# =============================================================================

DEFAULT_HIGH_CONFIDENCE_THRESHOLD = 0.90
DEFAULT_MEDIUM_CONFIDENCE_THRESHOLD = 0.60


def _load_thresholds():
    high = _env_float("SIGNED_HIGH_CONFIDENCE_THRESHOLD", DEFAULT_HIGH_CONFIDENCE_THRESHOLD)
    medium = _env_float("SIGNED_MEDIUM_CONFIDENCE_THRESHOLD", DEFAULT_MEDIUM_CONFIDENCE_THRESHOLD)
    if not (0.0 <= medium < high <= 1.0):
        logger.warning(
            "Confidence thresholds out of order (medium=%s, high=%s), using defaults",
            medium, high
        )
        return DEFAULT_HIGH_CONFIDENCE_THRESHOLD, DEFAULT_MEDIUM_CONFIDENCE_THRESHOLD
    return high, medium


HIGH_CONFIDENCE_THRESHOLD, MEDIUM_CONFIDENCE_THRESHOLD = _load_thresholds()


# =============================================================================
# MATCHING
# =============================================================================

# Shorter string must be at least this fraction of the longer one for a
# substring hit to count as a fuzzy match.
DEFAULT_FUZZY_MIN_LENGTH_RATIO = 0.60
FUZZY_MIN_LENGTH_RATIO = _env_float("SIGNED_FUZZY_MIN_LENGTH_RATIO", DEFAULT_FUZZY_MIN_LENGTH_RATIO)
if not (0.0 < FUZZY_MIN_LENGTH_RATIO <= 1.0):
    logger.warning(
        "SIGNED_FUZZY_MIN_LENGTH_RATIO=%s out of range, using %s",
        FUZZY_MIN_LENGTH_RATIO, DEFAULT_FUZZY_MIN_LENGTH_RATIO
    )
    FUZZY_MIN_LENGTH_RATIO = DEFAULT_FUZZY_MIN_LENGTH_RATIO


# =============================================================================
# OCR COLLABORATOR
# =============================================================================

OCR_SERVICE_URL = os.environ.get("SIGNED_OCR_SERVICE_URL", "http://localhost:8001").rstrip("/")
OCR_REQUEST_TIMEOUT = _env_int("SIGNED_OCR_REQUEST_TIMEOUT", 60)
OCR_DEFAULT_DPI = _env_int("SIGNED_OCR_DEFAULT_DPI", 200)
OCR_MIN_DPI = 100
OCR_MAX_DPI = 400


# =============================================================================
# STORAGE / LABELS
# =============================================================================

STORAGE_DIR = os.environ.get("SIGNED_STORAGE_DIR", "./data/signed")
STORAGE_BASE_URL = os.environ.get("SIGNED_STORAGE_BASE_URL", "")

LABELS_ENABLED = _env_bool("SIGNED_LABELS_ENABLED", "true")
GMAIL_API_BASE = os.environ.get("GMAIL_API_BASE", "https://gmail.googleapis.com/gmail/v1").rstrip("/")
GMAIL_REQUEST_TIMEOUT = _env_int("GMAIL_REQUEST_TIMEOUT", 30)
# Mailbox token for label bookkeeping; labels are skipped when unset
GMAIL_ACCESS_TOKEN = os.environ.get("GMAIL_ACCESS_TOKEN", "")

# Mongo collections
WORK_ORDERS_COLLECTION = os.environ.get("SIGNED_WORK_ORDERS_COLLECTION", "signed_work_orders")
REVIEW_ITEMS_COLLECTION = os.environ.get("SIGNED_REVIEW_ITEMS_COLLECTION", "signed_review_items")
