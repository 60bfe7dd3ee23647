"""
Work Order Hub - Signed Document Dedup Guard

Prevents a signed PDF from being processed twice. The SHA-256 of the file
bytes is looked up in the work order store first, then in the review
queue; the first hit wins.

A failed lookup counts as "not found" for that store only. Reprocessing a
duplicate is cheaper than blocking ingestion on a store that is missing
its hash column.
"""

import hashlib
import logging

from .models import DedupResult, FoundIn
from .stores import ReviewItemStore, WorkOrderStore

logger = logging.getLogger(__name__)


def compute_file_hash(data: bytes) -> str:
    """SHA-256 hex digest of the file bytes."""
    return hashlib.sha256(data).hexdigest()


class DedupGuard:
    """Checks both stores for an already-recorded file hash."""

    def __init__(self, work_orders: WorkOrderStore, review_items: ReviewItemStore):
        self.work_orders = work_orders
        self.review_items = review_items

    async def is_already_processed(self, file_hash: str, workspace_id: str) -> DedupResult:
        # 1) Work orders
        try:
            record = await self.work_orders.find_by_file_hash(workspace_id, file_hash)
            if record is not None:
                logger.info(
                    "Dedup hit: hash=%s... found on work order %s (workspace=%s)",
                    file_hash[:16], record.id, workspace_id
                )
                return DedupResult(exists=True, found_in=FoundIn.WORK_ORDER)
        except Exception as e:
            logger.warning("Dedup: work order lookup failed for workspace %s: %s", workspace_id, e)

        # 2) Review queue
        try:
            item = await self.review_items.find_unresolved_by_file_hash(workspace_id, file_hash)
            if item is not None:
                logger.info(
                    "Dedup hit: hash=%s... found in review queue item %s (workspace=%s)",
                    file_hash[:16], item.id, workspace_id
                )
                return DedupResult(exists=True, found_in=FoundIn.REVIEW_QUEUE)
        except Exception as e:
            logger.warning("Dedup: review queue lookup failed for workspace %s: %s", workspace_id, e)

        return DedupResult(exists=False)
