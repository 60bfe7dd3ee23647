"""
Work Order Hub - Disposition Executor

Applies a Decision to the external stores.

AUTO_MATCH:
1. Upload the signed PDF (failure aborts; a work order is never marked
   signed without a retrievable file)
2. Upload the OCR snippet image (best-effort)
3. Mark the work order signed. If this fails after the upload, the
   uploaded file is orphaned; it is logged and RecordWriteFailure is raised.

AUTO_CREATE_REVIEW / MANUAL_REVIEW:
1. Upload the signed PDF and snippet (best-effort; the review item is
   created either way so the document is never lost)
2. Insert an unresolved ReviewItem carrying raw text, tier and reason

Replays are safe: a work order already signed with this file hash and an
unresolved review item for this file hash are both left untouched.

Label transitions are not done here; see labels.apply_label_transition.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import CollaboratorFailure, RecordWriteFailure
from .file_storage import FileStorage, decode_data_url, safe_filename
from .models import (
    Decision, DispositionOutcome, DocumentSource, Extraction, ProcessingMode,
    ReviewItem, SourceMeta, WorkOrderStatus, utc_now_iso
)
from .stores import ReviewItemStore, WorkOrderStore, new_review_item_id
from .decision_engine import coerce_confidence

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Everything the executor needs about the document being disposed."""
    workspace_id: str
    fm_key: Optional[str]
    file_bytes: bytes
    filename: str
    file_hash: str
    source: DocumentSource = DocumentSource.UPLOAD
    source_meta: SourceMeta = field(default_factory=SourceMeta)


@dataclass
class ExecutionOutcome:
    mode: ProcessingMode
    matched_work_order_id: Optional[str] = None
    signed_pdf_url: Optional[str] = None
    snippet_url: Optional[str] = None
    review_item_id: Optional[str] = None
    replayed: bool = False


class DispositionExecutor:
    """Writes a decision's side effects to the work order and review stores."""

    def __init__(self, work_orders: WorkOrderStore, review_items: ReviewItemStore, storage: FileStorage):
        self.work_orders = work_orders
        self.review_items = review_items
        self.storage = storage

    async def apply(self, decision: Decision, extraction: Extraction, context: ExecutionContext) -> ExecutionOutcome:
        if decision.outcome == DispositionOutcome.AUTO_MATCH:
            return await self._apply_match(decision, extraction, context)
        return await self._apply_review(decision, extraction, context)

    # -------------------------------------------------------------------------
    # uploads
    # -------------------------------------------------------------------------

    async def _upload_snippet(self, extraction: Extraction, context: ExecutionContext,
                              work_order_number: Optional[str]) -> Optional[str]:
        decoded = decode_data_url(extraction.snippet_image_url)
        if decoded is None:
            return None
        _, png_bytes = decoded
        name = "-".join([
            "snippet",
            context.fm_key or "unknown",
            work_order_number or "no-wo",
            context.file_hash[:12],
        ]) + ".png"
        try:
            return await self.storage.upload(png_bytes, safe_filename(name))
        except Exception as e:
            logger.warning("Snippet upload failed for %s: %s", context.file_hash[:16], e)
            return None

    # -------------------------------------------------------------------------
    # AUTO_MATCH
    # -------------------------------------------------------------------------

    async def _apply_match(self, decision: Decision, extraction: Extraction,
                           context: ExecutionContext) -> ExecutionOutcome:
        work_order_id = decision.matched_work_order_id
        try:
            existing = await self.work_orders.get(context.workspace_id, work_order_id)
        except Exception as e:
            raise CollaboratorFailure("work_order_store", f"lookup of {work_order_id} failed: {e}") from e

        if existing is None:
            raise CollaboratorFailure(
                "work_order_store", f"work order {work_order_id} disappeared before it could be signed"
            )

        if existing.status == WorkOrderStatus.SIGNED.value and existing.file_hash == context.file_hash:
            logger.info("Work order %s already signed with this file, skipping", work_order_id)
            return ExecutionOutcome(
                mode=ProcessingMode.UPDATED,
                matched_work_order_id=work_order_id,
                signed_pdf_url=existing.signed_pdf_url,
                snippet_url=existing.signed_preview_image_url,
                replayed=True,
            )

        try:
            signed_url = await self.storage.upload(context.file_bytes, safe_filename(context.filename))
        except Exception as e:
            logger.error("Signed PDF upload failed for work order %s: %s", work_order_id, e)
            raise CollaboratorFailure("file_storage", f"upload failed: {e}") from e

        snippet_url = await self._upload_snippet(extraction, context, existing.work_order_number)
        signed_at = utc_now_iso()

        try:
            await self.work_orders.mark_signed(
                context.workspace_id, work_order_id, signed_url, signed_at,
                context.file_hash, preview_image_url=snippet_url,
            )
        except Exception as e:
            logger.error(
                "Work order %s write failed after upload; orphaned file needs cleanup: %s (%s)",
                work_order_id, signed_url, e
            )
            raise RecordWriteFailure(work_order_id, signed_url, str(e)) from e

        logger.info(
            "Work order %s marked signed (workspace=%s, reason=%s)",
            work_order_id, context.workspace_id, decision.reason_code
        )
        return ExecutionOutcome(
            mode=ProcessingMode.UPDATED,
            matched_work_order_id=work_order_id,
            signed_pdf_url=signed_url,
            snippet_url=snippet_url,
        )

    # -------------------------------------------------------------------------
    # REVIEW
    # -------------------------------------------------------------------------

    async def _apply_review(self, decision: Decision, extraction: Extraction,
                            context: ExecutionContext) -> ExecutionOutcome:
        try:
            existing = await self.review_items.find_unresolved_by_file_hash(
                context.workspace_id, context.file_hash
            )
        except Exception as e:
            logger.warning("Review queue lookup failed, inserting anyway: %s", e)
            existing = None

        if existing is not None:
            logger.info("Review item %s already queued for this file, skipping", existing.id)
            return ExecutionOutcome(
                mode=ProcessingMode.NEEDS_REVIEW,
                signed_pdf_url=existing.signed_pdf_url,
                snippet_url=existing.preview_image_url,
                review_item_id=existing.id,
                replayed=True,
            )

        signed_url = None
        try:
            signed_url = await self.storage.upload(context.file_bytes, safe_filename(context.filename))
        except Exception as e:
            logger.warning("Signed PDF upload failed for review item (queued without file): %s", e)

        snippet_url = await self._upload_snippet(extraction, context, extraction.candidate_number)
        meta = context.source_meta or SourceMeta()

        item = ReviewItem(
            id=new_review_item_id(),
            workspace_id=context.workspace_id,
            fm_key=context.fm_key,
            file_hash=context.file_hash,
            reason=decision.reason_code,
            confidence=decision.confidence_tier.value,
            raw_text=extraction.raw_text,
            signed_pdf_url=signed_url,
            preview_image_url=snippet_url or extraction.snippet_image_url,
            ocr_confidence_raw=coerce_confidence(extraction.confidence),
            candidate_number=extraction.candidate_number,
            outcome=decision.outcome.value,
            source=context.source.value,
            message_id=meta.message_id,
            attachment_id=meta.attachment_id,
            thread_id=meta.thread_id,
            subject=meta.subject,
            sender=meta.sender,
            received_at=meta.received_at,
        )

        try:
            await self.review_items.insert(item)
        except Exception as e:
            logger.error("Review item insert failed for %s: %s", context.file_hash[:16], e)
            raise CollaboratorFailure("review_store", f"insert failed: {e}") from e

        logger.info(
            "Review item %s queued (workspace=%s, outcome=%s, reason=%s)",
            item.id, context.workspace_id, decision.outcome.value, decision.reason_code
        )
        return ExecutionOutcome(
            mode=ProcessingMode.NEEDS_REVIEW,
            signed_pdf_url=signed_url,
            snippet_url=item.preview_image_url,
            review_item_id=item.id,
        )
