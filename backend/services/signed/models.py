"""
Work Order Hub - Signed Document Models

Typed records exchanged between the signed-document components and the
stores. Stores persist plain dicts; `from_dict` / `to_dict` are the only
place column names appear, so the engine never touches raw rows.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


# =============================================================================
# ENUMS
# =============================================================================

class ConfidenceTier(str, Enum):
    """Bucketed OCR confidence. Derived, never stored as a number."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchTier(str, Enum):
    """How a candidate matched a work order."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


class DispositionOutcome(str, Enum):
    """Outcome of the decision engine."""
    AUTO_MATCH = "AUTO_MATCH"
    AUTO_CREATE_REVIEW = "AUTO_CREATE_REVIEW"
    MANUAL_REVIEW = "MANUAL_REVIEW"


class ProcessingMode(str, Enum):
    """What the pipeline did with a document."""
    UPDATED = "UPDATED"                       # Work order marked signed
    NEEDS_REVIEW = "NEEDS_REVIEW"             # Review item queued
    ALREADY_PROCESSED = "ALREADY_PROCESSED"   # Dedup hit, nothing written


class WorkOrderStatus(str, Enum):
    OPEN = "open"
    SIGNED = "signed"
    ARCHIVED = "archived"


class DocumentSource(str, Enum):
    """Channel through which the signed document arrived."""
    UPLOAD = "UPLOAD"
    GMAIL = "GMAIL"
    API = "API"


class FoundIn(str, Enum):
    """Store in which a file hash was already recorded."""
    WORK_ORDER = "WORK_ORDER"
    REVIEW_QUEUE = "REVIEW_QUEUE"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# EXTRACTION
# =============================================================================

@dataclass(frozen=True)
class Extraction:
    """Output of one OCR call for a signed document."""
    candidate_number: Optional[str]
    confidence: Any
    raw_text: str = ""
    snippet_image_url: Optional[str] = None


@dataclass(frozen=True)
class CropGeometry:
    """
    Region of the page holding the work order number, in PDF points with a
    top-left origin.
    """
    x_pt: float
    y_pt: float
    w_pt: float
    h_pt: float
    page_width_pt: float
    page_height_pt: float
    page: int = 1
    dpi: Optional[int] = None


# =============================================================================
# WORK ORDERS
# =============================================================================

@dataclass
class WorkOrderRecord:
    """A job awaiting (or holding) its signed counterpart."""
    id: str
    work_order_number: str
    fm_key: Optional[str] = None
    status: str = WorkOrderStatus.OPEN.value
    workspace_id: Optional[str] = None
    # ISO strings or datetimes, depending on the store
    created_at: Any = None
    scheduled_date: Any = None
    signed_pdf_url: Optional[str] = None
    signed_preview_image_url: Optional[str] = None
    signed_at: Optional[str] = None
    file_hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkOrderRecord":
        return cls(
            id=str(data["id"]),
            work_order_number=data.get("work_order_number") or "",
            fm_key=data.get("fm_key"),
            status=data.get("status") or WorkOrderStatus.OPEN.value,
            workspace_id=data.get("workspace_id"),
            created_at=data.get("created_at"),
            scheduled_date=data.get("scheduled_date"),
            signed_pdf_url=data.get("signed_pdf_url"),
            signed_preview_image_url=data.get("signed_preview_image_url"),
            signed_at=data.get("signed_at"),
            file_hash=data.get("file_hash"),
        )

    @property
    def is_open(self) -> bool:
        return self.status == WorkOrderStatus.OPEN.value


# =============================================================================
# REVIEW QUEUE
# =============================================================================

@dataclass
class SourceMeta:
    """Inbound message metadata, present only for message-sourced documents."""
    message_id: Optional[str] = None
    attachment_id: Optional[str] = None
    thread_id: Optional[str] = None
    sender: Optional[str] = None
    subject: Optional[str] = None
    received_at: Optional[str] = None


@dataclass
class ReviewItem:
    """A signed document waiting for a human decision."""
    id: str
    workspace_id: str
    fm_key: Optional[str]
    file_hash: str
    reason: str
    confidence: str
    raw_text: str = ""
    signed_pdf_url: Optional[str] = None
    preview_image_url: Optional[str] = None
    ocr_confidence_raw: Optional[float] = None
    candidate_number: Optional[str] = None
    outcome: Optional[str] = None
    manual_work_order_number: Optional[str] = None
    resolved: bool = False
    resolved_at: Optional[str] = None
    source: str = DocumentSource.UPLOAD.value
    message_id: Optional[str] = None
    attachment_id: Optional[str] = None
    thread_id: Optional[str] = None
    subject: Optional[str] = None
    sender: Optional[str] = None
    received_at: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewItem":
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# MATCHING / DECISION
# =============================================================================

@dataclass(frozen=True)
class MatchResult:
    """Best work order for a candidate number."""
    work_order: WorkOrderRecord
    exact: bool

    @property
    def tier(self) -> MatchTier:
        return MatchTier.EXACT if self.exact else MatchTier.FUZZY


@dataclass(frozen=True)
class Decision:
    """Ephemeral decision engine output, consumed by the executor."""
    outcome: DispositionOutcome
    matched_work_order_id: Optional[str]
    reason_code: str
    confidence_tier: ConfidenceTier = ConfidenceTier.LOW
    match_tier: MatchTier = MatchTier.NONE

    @property
    def needs_review(self) -> bool:
        return self.outcome != DispositionOutcome.AUTO_MATCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "matched_work_order_id": self.matched_work_order_id,
            "reason_code": self.reason_code,
            "confidence_tier": self.confidence_tier.value,
            "match_tier": self.match_tier.value,
        }


@dataclass(frozen=True)
class DedupResult:
    exists: bool
    found_in: Optional[FoundIn] = None


# =============================================================================
# PIPELINE RESULT
# =============================================================================

@dataclass
class LabelTransitionResult:
    """Outcome of the best-effort label post-step."""
    attempted: bool = False
    success: bool = False
    removed: List[str] = field(default_factory=list)
    applied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProcessingResult:
    """What the pipeline did with one signed document."""
    mode: ProcessingMode
    workspace_id: str
    fm_key: Optional[str]
    file_hash: str
    decision: Optional[Decision] = None
    candidate_number: Optional[str] = None
    confidence_raw: float = 0.0
    confidence_tier: ConfidenceTier = ConfidenceTier.LOW
    matched_work_order_id: Optional[str] = None
    signed_pdf_url: Optional[str] = None
    snippet_url: Optional[str] = None
    review_item_id: Optional[str] = None
    found_in: Optional[FoundIn] = None
    labels: Optional[LabelTransitionResult] = None
    review_ux: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "workspace_id": self.workspace_id,
            "fm_key": self.fm_key,
            "file_hash": self.file_hash,
            "decision": self.decision.to_dict() if self.decision else None,
            "candidate_number": self.candidate_number,
            "confidence_raw": self.confidence_raw,
            "confidence_tier": self.confidence_tier.value,
            "matched_work_order_id": self.matched_work_order_id,
            "signed_pdf_url": self.signed_pdf_url,
            "snippet_url": self.snippet_url,
            "review_item_id": self.review_item_id,
            "found_in": self.found_in.value if self.found_in else None,
            "labels": self.labels.to_dict() if self.labels else None,
            "review_ux": self.review_ux,
        }
