"""
Work Order Hub - Signed Document Module

Matches signed work order PDFs back to their open work orders and
decides, per document, whether to apply the signature automatically or
park it in the review queue.

Components:
- find_best_match: Exact/fuzzy work order matcher
- decide / DECISION_TABLE: Confidence x match policy
- DedupGuard: File-hash duplicate check across both stores
- DispositionExecutor: Upload-then-write side effects
- apply_label_transition: Best-effort message label bookkeeping
- SignedDocumentPipeline: End-to-end orchestration
"""

from .decision_engine import DECISION_TABLE, ReasonCode, decide, tier_for_confidence
from .dedup_guard import DedupGuard, compute_file_hash
from .errors import (
    CollaboratorFailure, LabelTransitionFailure, RecordWriteFailure,
    SignedProcessingError, ValidationFailure
)
from .executor import DispositionExecutor, ExecutionContext
from .file_storage import FileStorage, InMemoryFileStorage, LocalFileStorage
from .labels import (
    GmailLabelPort, InMemoryLabelPort, LabelPort, WorkspaceLabels, apply_label_transition
)
from .matcher import find_best_match
from .normalizer import normalize
from .ocr_client import SignedOcrClient
from .pipeline import SignedDocumentPipeline, SignedProcessingRequest
from .stores import (
    InMemoryReviewItemStore, InMemoryWorkOrderStore, MongoReviewItemStore,
    MongoWorkOrderStore, ReviewItemStore, WorkOrderStore, create_signed_indexes
)

__all__ = [
    'DECISION_TABLE', 'ReasonCode', 'decide', 'tier_for_confidence',
    'DedupGuard', 'compute_file_hash',
    'SignedProcessingError', 'ValidationFailure', 'CollaboratorFailure',
    'RecordWriteFailure', 'LabelTransitionFailure',
    'DispositionExecutor', 'ExecutionContext',
    'FileStorage', 'InMemoryFileStorage', 'LocalFileStorage',
    'LabelPort', 'InMemoryLabelPort', 'GmailLabelPort', 'WorkspaceLabels',
    'apply_label_transition',
    'find_best_match',
    'normalize',
    'SignedOcrClient',
    'SignedDocumentPipeline', 'SignedProcessingRequest',
    'WorkOrderStore', 'ReviewItemStore',
    'InMemoryWorkOrderStore', 'InMemoryReviewItemStore',
    'MongoWorkOrderStore', 'MongoReviewItemStore', 'create_signed_indexes',
]
