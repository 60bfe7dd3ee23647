"""
Work Order Hub - Signed OCR Service Client

Calls the OCR microservice that reads the work order number from a crop
of a signed PDF. The service is a black box:

    POST {SIGNED_OCR_SERVICE_URL}/v1/ocr/signed
      multipart: file=<pdf>, plus crop geometry form fields
    200 -> {"woNumber": "...", "confidenceRaw": 0.93, "rawText": "...",
            "snippetImageUrl": "data:image/png;base64,..."}

Crop geometry is validated before any request is made. Transport errors,
non-2xx responses and unparseable bodies raise CollaboratorFailure. No
retries; the caller owns retry policy and timeouts.
"""

import math
import logging
from typing import Any, Dict, Optional

import httpx

from . import config
from .errors import CollaboratorFailure, ValidationFailure
from .models import CropGeometry, Extraction

logger = logging.getLogger(__name__)

MIN_CROP_SIZE_PT = 5.0


def sanitize_dpi(dpi: Optional[int]) -> int:
    if dpi is None or dpi == 0:
        return config.OCR_DEFAULT_DPI
    try:
        value = int(round(float(dpi)))
    except (TypeError, ValueError):
        return config.OCR_DEFAULT_DPI
    return max(config.OCR_MIN_DPI, min(config.OCR_MAX_DPI, value))


def validate_geometry(geometry: Optional[CropGeometry]) -> None:
    """Raise ValidationFailure unless the crop is a sane rectangle inside the page."""
    if geometry is None:
        raise ValidationFailure("Missing crop geometry")

    values = [
        geometry.x_pt, geometry.y_pt, geometry.w_pt, geometry.h_pt,
        geometry.page_width_pt, geometry.page_height_pt,
    ]
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise ValidationFailure(f"Crop geometry must be finite numbers, got {values}")

    if not isinstance(geometry.page, int) or geometry.page < 1:
        raise ValidationFailure("page must be >= 1 (1-based)")
    if geometry.page_width_pt <= 0 or geometry.page_height_pt <= 0:
        raise ValidationFailure("Page size must be positive")
    if geometry.x_pt < 0 or geometry.y_pt < 0 or geometry.w_pt <= 0 or geometry.h_pt <= 0:
        raise ValidationFailure("Crop must have a non-negative origin and positive size")
    if geometry.x_pt + geometry.w_pt > geometry.page_width_pt or \
            geometry.y_pt + geometry.h_pt > geometry.page_height_pt:
        raise ValidationFailure("Crop extends beyond the page")
    if geometry.w_pt < MIN_CROP_SIZE_PT or geometry.h_pt < MIN_CROP_SIZE_PT:
        raise ValidationFailure(f"Crop is smaller than {MIN_CROP_SIZE_PT}pt")


def parse_ocr_response(payload: Any) -> Extraction:
    """Build an Extraction from the service's JSON body."""
    if not isinstance(payload, dict):
        raise CollaboratorFailure("ocr", f"Expected a JSON object, got {type(payload).__name__}")

    candidate = payload.get("woNumber", payload.get("candidateNumber"))
    if candidate is not None and not isinstance(candidate, str):
        candidate = str(candidate)
    if isinstance(candidate, str) and not candidate.strip():
        candidate = None

    confidence = payload.get("confidenceRaw", payload.get("confidence"))
    raw_text = payload.get("rawText") or ""
    if not isinstance(raw_text, str):
        raise CollaboratorFailure("ocr", "rawText must be a string")

    return Extraction(
        candidate_number=candidate.strip() if candidate else None,
        confidence=confidence,
        raw_text=raw_text,
        snippet_image_url=payload.get("snippetImageUrl") or None,
    )


class SignedOcrClient:
    """Thin async client for the OCR microservice."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or config.OCR_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.OCR_REQUEST_TIMEOUT
        self._client = client

    def _form_fields(self, geometry: CropGeometry) -> Dict[str, str]:
        return {
            "page": str(geometry.page),
            "xPt": str(geometry.x_pt),
            "yPt": str(geometry.y_pt),
            "wPt": str(geometry.w_pt),
            "hPt": str(geometry.h_pt),
            "pageWidthPt": str(geometry.page_width_pt),
            "pageHeightPt": str(geometry.page_height_pt),
            "dpi": str(sanitize_dpi(geometry.dpi)),
        }

    async def extract(self, pdf_bytes: bytes, filename: str, geometry: CropGeometry) -> Extraction:
        """
        Read the work order number from a signed PDF.

        Raises:
            ValidationFailure: bad geometry or empty file (no request made)
            CollaboratorFailure: service unreachable or returned garbage
        """
        if not pdf_bytes:
            raise ValidationFailure("pdf bytes are required")
        validate_geometry(geometry)

        url = f"{self.base_url}/v1/ocr/signed"
        files = {"file": (filename or "signed.pdf", pdf_bytes, "application/pdf")}
        data = self._form_fields(geometry)

        try:
            if self._client is not None:
                response = await self._client.post(url, files=files, data=data)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, files=files, data=data)
        except httpx.HTTPError as e:
            logger.error("OCR service request failed: %s", e)
            raise CollaboratorFailure("ocr", f"request failed: {e}") from e

        if response.status_code != 200:
            logger.error("OCR service returned %s: %s", response.status_code, response.text[:200])
            raise CollaboratorFailure("ocr", f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise CollaboratorFailure("ocr", "response is not JSON") from e

        extraction = parse_ocr_response(payload)
        logger.info(
            "OCR complete: candidate=%s confidence=%s page=%s",
            extraction.candidate_number, extraction.confidence, geometry.page
        )
        return extraction
