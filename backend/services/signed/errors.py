"""
Work Order Hub - Signed Processing Errors

Exception hierarchy for the signed-document pipeline. A dedup hit is not
an error and has no exception here; it is reported as a result mode.
"""

from typing import Optional


class SignedProcessingError(Exception):
    """Base class for all signed-document processing errors."""


class ValidationFailure(SignedProcessingError):
    """Input rejected before any I/O (missing bytes, fm_key, bad geometry)."""


class CollaboratorFailure(SignedProcessingError):
    """An external collaborator (OCR, storage, store) failed or answered garbage."""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


class RecordWriteFailure(CollaboratorFailure):
    """
    The signed file was uploaded but the work order write failed.

    The uploaded file is left in place; `orphaned_url` points at it so an
    operator can clean it up.
    """

    def __init__(self, work_order_id: str, orphaned_url: Optional[str], message: str):
        self.work_order_id = work_order_id
        self.orphaned_url = orphaned_url
        super().__init__("work_order_store", message)


class LabelTransitionFailure(SignedProcessingError):
    """A label port call failed. Never escapes the label post-step."""
