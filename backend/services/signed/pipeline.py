"""
Work Order Hub - Signed Document Pipeline

One call processes one signed PDF end to end:

    validate -> hash -> dedup -> OCR -> load open work orders -> match
             -> decide -> execute -> label post-step

Stages run sequentially; each depends on the previous one. The pipeline
holds no per-document state between calls, so independent documents can
be processed concurrently with one shared instance.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .decision_engine import coerce_confidence, decide, tier_for_confidence
from .dedup_guard import DedupGuard, compute_file_hash
from .errors import CollaboratorFailure, ValidationFailure
from .executor import DispositionExecutor, ExecutionContext
from .file_storage import FileStorage
from .labels import LabelPort, WorkspaceLabels, apply_label_transition
from .matcher import describe_match, find_best_match
from .models import (
    CropGeometry, DocumentSource, Extraction, ProcessingMode, ProcessingResult,
    ReviewItem, SourceMeta
)
from .normalizer import normalize_fm_key
from .ocr_client import SignedOcrClient, validate_geometry
from .review_reasons import get_review_ux
from .stores import ReviewItemStore, WorkOrderStore

logger = logging.getLogger(__name__)

# A human-typed work order number is trusted like a high-confidence read.
MANUAL_OVERRIDE_CONFIDENCE = 1.0


@dataclass
class SignedProcessingRequest:
    """
    Input for one signed document.

    Either `geometry` (OCR is called) or `extraction` (OCR already done)
    must be supplied, unless `wo_number_override` is set.
    """
    workspace_id: str
    file_bytes: bytes
    filename: str = "signed-work-order.pdf"
    fm_key: Optional[str] = None
    geometry: Optional[CropGeometry] = None
    extraction: Optional[Extraction] = None
    wo_number_override: Optional[str] = None
    source: DocumentSource = DocumentSource.UPLOAD
    source_meta: SourceMeta = field(default_factory=SourceMeta)
    labels: Optional[WorkspaceLabels] = None


class SignedDocumentPipeline:
    """Wires the signed-document components together for one workspace backend."""

    def __init__(
        self,
        work_orders: WorkOrderStore,
        review_items: ReviewItemStore,
        storage: FileStorage,
        ocr_client: Optional[SignedOcrClient] = None,
        label_port: Optional[LabelPort] = None,
    ):
        self.work_orders = work_orders
        self.review_items = review_items
        self.ocr_client = ocr_client or SignedOcrClient()
        self.label_port = label_port
        self.dedup_guard = DedupGuard(work_orders, review_items)
        self.executor = DispositionExecutor(work_orders, review_items, storage)

    # -------------------------------------------------------------------------
    # validation
    # -------------------------------------------------------------------------

    @staticmethod
    def validate(request: SignedProcessingRequest) -> None:
        """Reject malformed requests before any I/O."""
        if not request.workspace_id:
            raise ValidationFailure("workspace_id is required")
        if not request.file_bytes:
            raise ValidationFailure("file bytes are required and must not be empty")
        override = (request.wo_number_override or "").strip()
        if request.extraction is None and not override:
            validate_geometry(request.geometry)
        elif request.geometry is not None:
            validate_geometry(request.geometry)

    # -------------------------------------------------------------------------
    # stages
    # -------------------------------------------------------------------------

    async def _extract(self, request: SignedProcessingRequest) -> Extraction:
        if request.extraction is not None:
            extraction = request.extraction
        elif request.geometry is not None:
            extraction = await self.ocr_client.extract(request.file_bytes, request.filename, request.geometry)
        else:
            extraction = Extraction(candidate_number=None, confidence=0.0)

        override = (request.wo_number_override or "").strip()
        if override:
            logger.info("Using manual work order override %s (OCR read %s)", override, extraction.candidate_number)
            extraction = Extraction(
                candidate_number=override,
                confidence=MANUAL_OVERRIDE_CONFIDENCE,
                raw_text=extraction.raw_text,
                snippet_image_url=extraction.snippet_image_url,
            )
        return extraction

    async def _load_open_work_orders(self, workspace_id: str, fm_key: Optional[str]):
        try:
            return await self.work_orders.find_open_by_fm_key(workspace_id, fm_key)
        except Exception as e:
            raise CollaboratorFailure("work_order_store", f"open work order lookup failed: {e}") from e

    # -------------------------------------------------------------------------
    # entry points
    # -------------------------------------------------------------------------

    async def process(self, request: SignedProcessingRequest) -> ProcessingResult:
        self.validate(request)

        fm_key = normalize_fm_key(request.fm_key)
        file_hash = compute_file_hash(request.file_bytes)

        logger.info(
            "Signed processing start: workspace=%s fm_key=%s file=%s hash=%s... source=%s",
            request.workspace_id, fm_key, request.filename, file_hash[:16], request.source.value
        )

        dedup = await self.dedup_guard.is_already_processed(file_hash, request.workspace_id)
        if dedup.exists:
            logger.info("Signed PDF already processed (found in %s), nothing to do", dedup.found_in.value)
            return ProcessingResult(
                mode=ProcessingMode.ALREADY_PROCESSED,
                workspace_id=request.workspace_id,
                fm_key=fm_key,
                file_hash=file_hash,
                found_in=dedup.found_in,
            )

        extraction = await self._extract(request)
        open_work_orders = await self._load_open_work_orders(request.workspace_id, fm_key)

        match = find_best_match(extraction.candidate_number, fm_key, open_work_orders)
        matched_id, match_tier = describe_match(match)
        logger.info(
            "Match for candidate %s among %d open work orders: %s (%s)",
            extraction.candidate_number, len(open_work_orders), matched_id, match_tier
        )

        decision = decide(extraction, match)

        context = ExecutionContext(
            workspace_id=request.workspace_id,
            fm_key=fm_key,
            file_bytes=request.file_bytes,
            filename=request.filename,
            file_hash=file_hash,
            source=request.source,
            source_meta=request.source_meta or SourceMeta(),
        )
        outcome = await self.executor.apply(decision, extraction, context)

        labels_result = None
        message_id = context.source_meta.message_id
        if message_id and request.labels and self.label_port is not None:
            labels_result = await apply_label_transition(
                self.label_port, message_id, request.labels, outcome.mode
            )

        return ProcessingResult(
            mode=outcome.mode,
            workspace_id=request.workspace_id,
            fm_key=fm_key,
            file_hash=file_hash,
            decision=decision,
            candidate_number=extraction.candidate_number,
            confidence_raw=coerce_confidence(extraction.confidence),
            confidence_tier=tier_for_confidence(extraction.confidence),
            matched_work_order_id=outcome.matched_work_order_id,
            signed_pdf_url=outcome.signed_pdf_url,
            snippet_url=outcome.snippet_url,
            review_item_id=outcome.review_item_id,
            labels=labels_result,
            review_ux=get_review_ux(decision.reason_code) if decision.needs_review else None,
        )

    async def list_pending_reviews(
        self, workspace_id: str, fm_key: Optional[str] = None, limit: int = 100
    ) -> List[ReviewItem]:
        return await self.review_items.list_unresolved(workspace_id, normalize_fm_key(fm_key), limit)

    async def clear_resolved_reviews(self, workspace_id: str) -> int:
        """Operator action: drop review items a human already resolved."""
        count = await self.review_items.clear_resolved(workspace_id)
        logger.info("Cleared %d resolved review items (workspace=%s)", count, workspace_id)
        return count
