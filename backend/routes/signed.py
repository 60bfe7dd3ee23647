"""
Work Order Hub - Signed Documents Router

Upload a signed work order PDF, list what is waiting for review, and
clear resolved review items. All the logic lives in
services.signed.SignedDocumentPipeline; this router only adapts HTTP.
"""

from fastapi import APIRouter, HTTPException, Query, UploadFile, File, Form
from typing import Optional
from pydantic import BaseModel
import logging

from services.signed.errors import CollaboratorFailure, RecordWriteFailure, ValidationFailure
from services.signed.labels import WorkspaceLabels
from services.signed.models import CropGeometry, DocumentSource, SourceMeta
from services.signed.pipeline import SignedDocumentPipeline, SignedProcessingRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/signed", tags=["signed"])

# Pipeline - set by main app
pipeline: Optional[SignedDocumentPipeline] = None

def set_dependencies(signed_pipeline: SignedDocumentPipeline):
    global pipeline
    pipeline = signed_pipeline


def _require_pipeline() -> SignedDocumentPipeline:
    if pipeline is None:
        logger.error("Signed router called before the pipeline was initialized")
        raise HTTPException(status_code=500, detail="Signed pipeline not initialized")
    return pipeline


# ==================== MODELS ====================

class ClearVerificationRequest(BaseModel):
    workspace_id: str


# ==================== HELPERS ====================

def _build_geometry(page, x_pt, y_pt, w_pt, h_pt, page_width_pt, page_height_pt, dpi) -> Optional[CropGeometry]:
    """No crop fields at all means "no OCR geometry"; partial input is left for validation to reject."""
    crop = (x_pt, y_pt, w_pt, h_pt, page_width_pt, page_height_pt)
    if all(v is None for v in crop):
        return None
    return CropGeometry(
        x_pt=x_pt, y_pt=y_pt, w_pt=w_pt, h_pt=h_pt,
        page_width_pt=page_width_pt, page_height_pt=page_height_pt,
        page=page, dpi=dpi,
    )


def _build_labels(queue_label_id, processed_label_id, needs_review_label_id) -> Optional[WorkspaceLabels]:
    if not queue_label_id:
        return None
    return WorkspaceLabels(
        queue=queue_label_id,
        processed=processed_label_id or None,
        needs_review=needs_review_label_id or None,
    )


# ==================== ENDPOINTS ====================

@router.post("/process")
async def process_signed_document(
    file: UploadFile = File(...),
    workspace_id: str = Form(...),
    fm_key: Optional[str] = Form(None),
    page: int = Form(1),
    x_pt: Optional[float] = Form(None),
    y_pt: Optional[float] = Form(None),
    w_pt: Optional[float] = Form(None),
    h_pt: Optional[float] = Form(None),
    page_width_pt: Optional[float] = Form(None),
    page_height_pt: Optional[float] = Form(None),
    dpi: Optional[int] = Form(None),
    wo_number_override: Optional[str] = Form(None),
    source: str = Form(DocumentSource.UPLOAD.value),
    message_id: Optional[str] = Form(None),
    attachment_id: Optional[str] = Form(None),
    thread_id: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    sender: Optional[str] = Form(None),
    received_at: Optional[str] = Form(None),
    queue_label_id: Optional[str] = Form(None),
    processed_label_id: Optional[str] = Form(None),
    needs_review_label_id: Optional[str] = Form(None),
):
    """
    Process one signed work order PDF.

    Returns the ProcessingResult; mode is UPDATED, NEEDS_REVIEW or
    ALREADY_PROCESSED.
    """
    signed_pipeline = _require_pipeline()
    content = await file.read()

    try:
        document_source = DocumentSource(source.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown source: {source}")

    request = SignedProcessingRequest(
        workspace_id=workspace_id,
        file_bytes=content,
        filename=file.filename or "signed-work-order.pdf",
        fm_key=fm_key,
        geometry=_build_geometry(page, x_pt, y_pt, w_pt, h_pt, page_width_pt, page_height_pt, dpi),
        wo_number_override=wo_number_override,
        source=document_source,
        source_meta=SourceMeta(
            message_id=message_id,
            attachment_id=attachment_id,
            thread_id=thread_id,
            subject=subject,
            sender=sender,
            received_at=received_at,
        ),
        labels=_build_labels(queue_label_id, processed_label_id, needs_review_label_id),
    )

    try:
        result = await signed_pipeline.process(request)
    except ValidationFailure as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordWriteFailure as e:
        raise HTTPException(status_code=502, detail={
            "error": str(e),
            "work_order_id": e.work_order_id,
            "orphaned_url": e.orphaned_url,
        })
    except CollaboratorFailure as e:
        logger.error("Signed processing failed (%s): %s", e.collaborator, e)
        raise HTTPException(status_code=502, detail=str(e))

    return result.to_dict()


@router.get("/needs-review")
async def list_needs_review(
    workspace_id: str = Query(...),
    fm_key: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500)
):
    """Unresolved review items, newest first."""
    signed_pipeline = _require_pipeline()
    items = await signed_pipeline.list_pending_reviews(workspace_id, fm_key, limit)
    return {"items": [i.to_dict() for i in items], "total": len(items)}


@router.post("/verification/clear")
async def clear_verification(req: ClearVerificationRequest):
    """Bulk-delete review items a human has already resolved."""
    signed_pipeline = _require_pipeline()
    cleared = await signed_pipeline.clear_resolved_reviews(req.workspace_id)
    return {"success": True, "cleared": cleared}
