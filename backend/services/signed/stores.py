"""
Work Order Hub - Signed Document Stores

Typed store contracts for work orders and review items, each with an
in-memory implementation (tests, development) and a MongoDB
implementation backed by motor.

Every call is scoped by workspace_id. Lookup errors propagate to the
caller; deciding whether a failed lookup is fatal is the caller's job.
"""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from .models import ReviewItem, WorkOrderRecord, WorkOrderStatus, utc_now_iso
from .normalizer import fm_key_scope

logger = logging.getLogger(__name__)


# =============================================================================
# CONTRACTS
# =============================================================================

class WorkOrderStore(ABC):
    """Read path for open work orders plus the single write the engine performs."""

    @abstractmethod
    async def find_open_by_fm_key(
        self, workspace_id: str, fm_key: Optional[str]
    ) -> List[WorkOrderRecord]:
        """
        Open work orders for an issuer, in insertion order.
        A None fm_key returns every open work order in the workspace.
        """

    @abstractmethod
    async def find_by_file_hash(self, workspace_id: str, file_hash: str) -> Optional[WorkOrderRecord]:
        pass

    @abstractmethod
    async def get(self, workspace_id: str, work_order_id: str) -> Optional[WorkOrderRecord]:
        pass

    @abstractmethod
    async def mark_signed(
        self,
        workspace_id: str,
        work_order_id: str,
        signed_url: str,
        signed_at: str,
        file_hash: str,
        preview_image_url: Optional[str] = None,
    ) -> None:
        """Set status=signed and the signed file pointers. Raises KeyError if missing."""


class ReviewItemStore(ABC):
    """Pending-human-decision queue."""

    @abstractmethod
    async def find_unresolved_by_file_hash(self, workspace_id: str, file_hash: str) -> Optional[ReviewItem]:
        pass

    @abstractmethod
    async def insert(self, item: ReviewItem) -> None:
        pass

    @abstractmethod
    async def list_unresolved(
        self, workspace_id: str, fm_key: Optional[str] = None, limit: int = 100
    ) -> List[ReviewItem]:
        """Unresolved items, newest first."""

    @abstractmethod
    async def clear_resolved(self, workspace_id: str) -> int:
        """Delete resolved items. Returns the number removed."""


def new_review_item_id() -> str:
    return f"rev_{uuid.uuid4().hex[:16]}"


_KEY_GAP = "[^a-z0-9]*"


def fm_key_query(scope_key: str) -> Dict[str, str]:
    """
    Mongo filter matching every stored spelling of an issuer key, e.g.
    "servicechannel" matches "service_channel" and "ServiceChannel".
    """
    pattern = _KEY_GAP.join(re.escape(c) for c in scope_key)
    return {"$regex": f"^{_KEY_GAP}{pattern}{_KEY_GAP}$", "$options": "i"}


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryWorkOrderStore(WorkOrderStore):
    """Work order store for tests. Records are kept in insertion order."""

    def __init__(self, records: Optional[List[WorkOrderRecord]] = None):
        self._records: List[WorkOrderRecord] = list(records or [])
        self.mark_signed_calls = 0

    def add(self, record: WorkOrderRecord) -> None:
        self._records.append(record)

    def all(self) -> List[WorkOrderRecord]:
        return list(self._records)

    async def find_open_by_fm_key(self, workspace_id, fm_key):
        scope_key = fm_key_scope(fm_key)
        return [
            r for r in self._records
            if r.workspace_id == workspace_id
            and r.is_open
            and (scope_key is None or fm_key_scope(r.fm_key) == scope_key)
        ]

    async def find_by_file_hash(self, workspace_id, file_hash):
        for record in self._records:
            if record.workspace_id == workspace_id and record.file_hash == file_hash:
                return record
        return None

    async def get(self, workspace_id, work_order_id):
        for record in self._records:
            if record.workspace_id == workspace_id and record.id == work_order_id:
                return record
        return None

    async def mark_signed(self, workspace_id, work_order_id, signed_url, signed_at, file_hash,
                          preview_image_url=None):
        record = await self.get(workspace_id, work_order_id)
        if record is None:
            raise KeyError(f"Work order {work_order_id} not found in workspace {workspace_id}")
        self.mark_signed_calls += 1
        record.status = WorkOrderStatus.SIGNED.value
        record.signed_pdf_url = signed_url
        record.signed_at = signed_at
        record.file_hash = file_hash
        if preview_image_url:
            record.signed_preview_image_url = preview_image_url


class InMemoryReviewItemStore(ReviewItemStore):
    """Review queue for tests."""

    def __init__(self):
        self._items: List[ReviewItem] = []

    def all(self) -> List[ReviewItem]:
        return list(self._items)

    async def find_unresolved_by_file_hash(self, workspace_id, file_hash):
        for item in self._items:
            if item.workspace_id == workspace_id and item.file_hash == file_hash and not item.resolved:
                return item
        return None

    async def insert(self, item):
        self._items.append(item)

    async def list_unresolved(self, workspace_id, fm_key=None, limit=100):
        scope_key = fm_key_scope(fm_key)
        items = [
            i for i in self._items
            if i.workspace_id == workspace_id and not i.resolved
            and (scope_key is None or fm_key_scope(i.fm_key) == scope_key)
        ]
        items.reverse()
        return items[:limit]

    async def clear_resolved(self, workspace_id):
        before = len(self._items)
        self._items = [
            i for i in self._items
            if not (i.workspace_id == workspace_id and i.resolved)
        ]
        return before - len(self._items)


# =============================================================================
# MONGODB
# =============================================================================

class MongoWorkOrderStore(WorkOrderStore):
    """
    Work orders in a MongoDB collection.

    Documents are expected to carry `workspace_id`, `id`, `work_order_number`,
    `fm_key` (any spelling, see fm_key_query), `status`, and timestamps as
    ISO strings or datetimes.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_open_by_fm_key(self, workspace_id, fm_key):
        query: Dict[str, Any] = {
            "workspace_id": workspace_id,
            "status": WorkOrderStatus.OPEN.value,
        }
        scope_key = fm_key_scope(fm_key)
        if scope_key is not None:
            query["fm_key"] = fm_key_query(scope_key)
        docs = await self.collection.find(query, {"_id": 0}).sort("_id", 1).to_list(None)
        return [WorkOrderRecord.from_dict(d) for d in docs]

    async def find_by_file_hash(self, workspace_id, file_hash):
        doc = await self.collection.find_one(
            {"workspace_id": workspace_id, "file_hash": file_hash}, {"_id": 0}
        )
        return WorkOrderRecord.from_dict(doc) if doc else None

    async def get(self, workspace_id, work_order_id):
        doc = await self.collection.find_one(
            {"workspace_id": workspace_id, "id": work_order_id}, {"_id": 0}
        )
        return WorkOrderRecord.from_dict(doc) if doc else None

    async def mark_signed(self, workspace_id, work_order_id, signed_url, signed_at, file_hash,
                          preview_image_url=None):
        update = {
            "status": WorkOrderStatus.SIGNED.value,
            "signed_pdf_url": signed_url,
            "signed_at": signed_at,
            "file_hash": file_hash,
            "last_updated_at": utc_now_iso(),
        }
        if preview_image_url:
            update["signed_preview_image_url"] = preview_image_url

        result = await self.collection.update_one(
            {"workspace_id": workspace_id, "id": work_order_id},
            {"$set": update}
        )
        if result.matched_count == 0:
            raise KeyError(f"Work order {work_order_id} not found in workspace {workspace_id}")


class MongoReviewItemStore(ReviewItemStore):
    """Review items in a MongoDB collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def find_unresolved_by_file_hash(self, workspace_id, file_hash):
        doc = await self.collection.find_one(
            {"workspace_id": workspace_id, "file_hash": file_hash, "resolved": {"$ne": True}},
            {"_id": 0}
        )
        return ReviewItem.from_dict(doc) if doc else None

    async def insert(self, item):
        # insert_one adds _id to the dict it is given
        await self.collection.insert_one(item.to_dict())

    async def list_unresolved(self, workspace_id, fm_key=None, limit=100):
        query: Dict[str, Any] = {"workspace_id": workspace_id, "resolved": {"$ne": True}}
        scope_key = fm_key_scope(fm_key)
        if scope_key is not None:
            query["fm_key"] = fm_key_query(scope_key)
        docs = await self.collection.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)
        return [ReviewItem.from_dict(d) for d in docs]

    async def clear_resolved(self, workspace_id):
        result = await self.collection.delete_many({"workspace_id": workspace_id, "resolved": True})
        logger.info("Cleared %d resolved review items for workspace %s", result.deleted_count, workspace_id)
        return result.deleted_count


async def create_signed_indexes(work_orders: AsyncIOMotorCollection, review_items: AsyncIOMotorCollection) -> None:
    """Indexes backing the lookups above."""
    await work_orders.create_index([("workspace_id", 1), ("id", 1)], unique=True)
    await work_orders.create_index([("workspace_id", 1), ("fm_key", 1), ("status", 1)])
    await work_orders.create_index([("workspace_id", 1), ("file_hash", 1)])
    await review_items.create_index("id", unique=True)
    await review_items.create_index([("workspace_id", 1), ("file_hash", 1), ("resolved", 1)])
    await review_items.create_index([("workspace_id", 1), ("created_at", -1)])
    logger.info("Signed document indexes created")
