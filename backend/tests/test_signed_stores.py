"""
Tests for Signed Document Stores and Dedup Guard

In-memory stores are exercised directly; Mongo stores run against
AsyncMock/MagicMock motor collections.
"""
import hashlib
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.signed.dedup_guard import DedupGuard, compute_file_hash
from services.signed.models import FoundIn, ReviewItem, WorkOrderRecord
from services.signed.stores import (
    InMemoryReviewItemStore, InMemoryWorkOrderStore, MongoReviewItemStore, MongoWorkOrderStore,
    create_signed_indexes, fm_key_query, new_review_item_id
)


# =============================================================================
# MOCK DATA
# =============================================================================

PDF_BYTES = b"%PDF-1.4 signed work order"
PDF_HASH = hashlib.sha256(PDF_BYTES).hexdigest()


def make_review_item(id="rev_1", file_hash=PDF_HASH, resolved=False, fm_key="servicechannel", workspace_id="ws1"):
    return ReviewItem(
        id=id,
        workspace_id=workspace_id,
        fm_key=fm_key,
        file_hash=file_hash,
        reason="low-confidence-no-match",
        confidence="low",
        resolved=resolved,
    )


def mock_collection():
    """Motor collection double: find() returns a chainable cursor."""
    collection = MagicMock()
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])
    collection.find.return_value = cursor
    collection.find_one = AsyncMock(return_value=None)
    collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
    collection.insert_one = AsyncMock()
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.create_index = AsyncMock()
    return collection, cursor


class TestFileHash:
    """Tests for compute_file_hash."""

    def test_sha256_hex(self):
        """Test the file hash is SHA-256 hex."""
        assert compute_file_hash(PDF_BYTES) == PDF_HASH
        assert len(compute_file_hash(b"")) == 64


class TestInMemoryWorkOrderStore:
    """Tests for InMemoryWorkOrderStore."""

    @pytest.mark.asyncio
    async def test_find_open_scoped_by_workspace_and_fm_key(self):
        """Test open work orders are scoped by workspace and issuer key."""
        store = InMemoryWorkOrderStore([
            WorkOrderRecord(id="1", work_order_number="A", fm_key="servicechannel", workspace_id="ws1"),
            WorkOrderRecord(id="2", work_order_number="B", fm_key="corrigo", workspace_id="ws1"),
            WorkOrderRecord(id="3", work_order_number="C", fm_key="servicechannel", workspace_id="ws2"),
            WorkOrderRecord(id="4", work_order_number="D", fm_key="servicechannel", workspace_id="ws1",
                            status="signed"),
        ])
        found = await store.find_open_by_fm_key("ws1", "servicechannel")
        assert [r.id for r in found] == ["1"]

        everything = await store.find_open_by_fm_key("ws1", None)
        assert [r.id for r in everything] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_find_open_matches_any_fm_key_spelling(self):
        """Test open work orders match any issuer key spelling."""
        store = InMemoryWorkOrderStore([
            WorkOrderRecord(id="1", work_order_number="A", fm_key="servicechannel", workspace_id="ws1"),
            WorkOrderRecord(id="2", work_order_number="B", fm_key="ServiceChannel", workspace_id="ws1"),
            WorkOrderRecord(id="3", work_order_number="C", fm_key="corrigo", workspace_id="ws1"),
        ])
        found = await store.find_open_by_fm_key("ws1", "service_channel")
        assert [r.id for r in found] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_mark_signed(self):
        """Test marking a work order signed."""
        store = InMemoryWorkOrderStore([
            WorkOrderRecord(id="42", work_order_number="WO-12345", workspace_id="ws1"),
        ])
        await store.mark_signed("ws1", "42", "memory://x/a.pdf", "2024-01-01T00:00:00+00:00", PDF_HASH)

        record = await store.get("ws1", "42")
        assert record.status == "signed"
        assert record.signed_pdf_url == "memory://x/a.pdf"
        assert (await store.find_by_file_hash("ws1", PDF_HASH)).id == "42"
        assert store.mark_signed_calls == 1

    @pytest.mark.asyncio
    async def test_mark_signed_missing_raises(self):
        """Test marking a missing work order raises KeyError."""
        store = InMemoryWorkOrderStore()
        with pytest.raises(KeyError):
            await store.mark_signed("ws1", "nope", "u", "t", PDF_HASH)


class TestInMemoryReviewItemStore:
    """Tests for InMemoryReviewItemStore."""

    @pytest.mark.asyncio
    async def test_unresolved_lookup_ignores_resolved(self):
        """Test the unresolved lookup ignores resolved items."""
        store = InMemoryReviewItemStore()
        await store.insert(make_review_item(resolved=True))
        assert await store.find_unresolved_by_file_hash("ws1", PDF_HASH) is None

        await store.insert(make_review_item(id="rev_2"))
        assert (await store.find_unresolved_by_file_hash("ws1", PDF_HASH)).id == "rev_2"

    @pytest.mark.asyncio
    async def test_list_unresolved_newest_first(self):
        """Test unresolved items are listed newest first."""
        store = InMemoryReviewItemStore()
        await store.insert(make_review_item(id="a", file_hash="h1"))
        await store.insert(make_review_item(id="b", file_hash="h2"))
        await store.insert(make_review_item(id="c", file_hash="h3", resolved=True))

        items = await store.list_unresolved("ws1")
        assert [i.id for i in items] == ["b", "a"]
        assert [i.id for i in await store.list_unresolved("ws1", limit=1)] == ["b"]
        assert await store.list_unresolved("ws1", fm_key="corrigo") == []

    @pytest.mark.asyncio
    async def test_list_unresolved_matches_any_fm_key_spelling(self):
        """Test review listing matches any issuer key spelling."""
        store = InMemoryReviewItemStore()
        await store.insert(make_review_item(id="a", fm_key="service_channel"))
        items = await store.list_unresolved("ws1", fm_key="ServiceChannel")
        assert [i.id for i in items] == ["a"]

    @pytest.mark.asyncio
    async def test_clear_resolved_only_touches_resolved(self):
        """Test clearing touches only resolved items in the workspace."""
        store = InMemoryReviewItemStore()
        await store.insert(make_review_item(id="keep", file_hash="h1"))
        await store.insert(make_review_item(id="gone", file_hash="h2", resolved=True))
        await store.insert(make_review_item(id="other_ws", file_hash="h3", resolved=True, workspace_id="ws2"))

        assert await store.clear_resolved("ws1") == 1
        assert sorted(i.id for i in store.all()) == ["keep", "other_ws"]

    def test_review_item_ids_unique(self):
        """Test review item ids are unique."""
        ids = {new_review_item_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("rev_") for i in ids)


class TestMongoStores:
    """Tests for the motor-backed stores."""

    @pytest.mark.asyncio
    async def test_find_open_query(self):
        """Test the open work order query and projection."""
        collection, cursor = mock_collection()
        cursor.to_list = AsyncMock(return_value=[
            {"id": "42", "work_order_number": "WO-12345", "fm_key": "servicechannel",
             "status": "open", "workspace_id": "ws1", "extra_column": "ignored"},
        ])
        store = MongoWorkOrderStore(collection)

        found = await store.find_open_by_fm_key("ws1", "Service Channel")

        query, projection = collection.find.call_args[0]
        assert query == {"workspace_id": "ws1", "status": "open", "fm_key": fm_key_query("servicechannel")}
        assert projection == {"_id": 0}
        assert found[0].id == "42"
        assert found[0].work_order_number == "WO-12345"

    def test_fm_key_query_matches_stored_spellings(self):
        """Test the issuer key regex matches stored spellings only."""
        filt = fm_key_query("servicechannel")
        assert filt["$options"] == "i"
        for stored in ("servicechannel", "service_channel", "ServiceChannel", "Service Channel"):
            assert re.match(filt["$regex"], stored, re.IGNORECASE), stored
        for stored in ("corrigo", "servicechannel2", "my_servicechannel"):
            assert not re.match(filt["$regex"], stored, re.IGNORECASE), stored

    @pytest.mark.asyncio
    async def test_find_open_without_fm_key(self):
        """Test the query without an issuer key."""
        collection, _ = mock_collection()
        await MongoWorkOrderStore(collection).find_open_by_fm_key("ws1", None)
        query, _ = collection.find.call_args[0]
        assert "fm_key" not in query

    @pytest.mark.asyncio
    async def test_mark_signed_sets_fields(self):
        """Test mark_signed sets the signed fields."""
        collection, _ = mock_collection()
        store = MongoWorkOrderStore(collection)

        await store.mark_signed("ws1", "42", "https://files/x.pdf", "2024-01-01T00:00:00+00:00", PDF_HASH,
                                preview_image_url="https://files/snip.png")

        filter_doc, update = collection.update_one.call_args[0]
        assert filter_doc == {"workspace_id": "ws1", "id": "42"}
        assert update["$set"]["status"] == "signed"
        assert update["$set"]["signed_pdf_url"] == "https://files/x.pdf"
        assert update["$set"]["file_hash"] == PDF_HASH
        assert update["$set"]["signed_preview_image_url"] == "https://files/snip.png"

    @pytest.mark.asyncio
    async def test_mark_signed_missing_raises(self):
        """Test marking a missing work order raises KeyError."""
        collection, _ = mock_collection()
        collection.update_one = AsyncMock(return_value=MagicMock(matched_count=0))
        with pytest.raises(KeyError):
            await MongoWorkOrderStore(collection).mark_signed("ws1", "nope", "u", "t", PDF_HASH)

    @pytest.mark.asyncio
    async def test_review_lookup_excludes_resolved(self):
        """Test the review lookup excludes resolved items."""
        collection, _ = mock_collection()
        collection.find_one = AsyncMock(return_value={
            "id": "rev_1", "workspace_id": "ws1", "fm_key": None, "file_hash": PDF_HASH,
            "reason": "low-confidence", "confidence": "low", "resolved": False,
        })
        item = await MongoReviewItemStore(collection).find_unresolved_by_file_hash("ws1", PDF_HASH)

        query = collection.find_one.call_args[0][0]
        assert query["resolved"] == {"$ne": True}
        assert item.id == "rev_1"

    @pytest.mark.asyncio
    async def test_review_insert_and_clear(self):
        """Test review insert and clear."""
        collection, _ = mock_collection()
        collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=3))
        store = MongoReviewItemStore(collection)

        await store.insert(make_review_item())
        inserted = collection.insert_one.call_args[0][0]
        assert inserted["id"] == "rev_1"
        assert inserted["resolved"] is False

        assert await store.clear_resolved("ws1") == 3
        collection.delete_many.assert_awaited_once_with({"workspace_id": "ws1", "resolved": True})

    @pytest.mark.asyncio
    async def test_create_indexes(self):
        """Test index creation."""
        work_orders, _ = mock_collection()
        review_items, _ = mock_collection()
        await create_signed_indexes(work_orders, review_items)
        assert work_orders.create_index.await_count == 3
        assert review_items.create_index.await_count == 3


class TestDedupGuard:
    """Tests for DedupGuard.is_already_processed."""

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Test a new file is not a duplicate."""
        guard = DedupGuard(InMemoryWorkOrderStore(), InMemoryReviewItemStore())
        result = await guard.is_already_processed(PDF_HASH, "ws1")
        assert result.exists is False
        assert result.found_in is None

    @pytest.mark.asyncio
    async def test_found_on_work_order(self):
        """Test a duplicate found on a work order."""
        work_orders = InMemoryWorkOrderStore([
            WorkOrderRecord(id="42", work_order_number="WO-1", workspace_id="ws1", status="signed",
                            file_hash=PDF_HASH),
        ])
        result = await DedupGuard(work_orders, InMemoryReviewItemStore()).is_already_processed(PDF_HASH, "ws1")
        assert result.exists is True
        assert result.found_in == FoundIn.WORK_ORDER

    @pytest.mark.asyncio
    async def test_found_in_review_queue(self):
        """Test a duplicate found in the review queue."""
        review_items = InMemoryReviewItemStore()
        await review_items.insert(make_review_item())
        result = await DedupGuard(InMemoryWorkOrderStore(), review_items).is_already_processed(PDF_HASH, "ws1")
        assert result.found_in == FoundIn.REVIEW_QUEUE

    @pytest.mark.asyncio
    async def test_work_order_checked_first(self):
        """Test work orders are checked before the review queue."""
        work_orders = MagicMock()
        work_orders.find_by_file_hash = AsyncMock(
            return_value=WorkOrderRecord(id="42", work_order_number="WO-1", file_hash=PDF_HASH)
        )
        review_items = MagicMock()
        review_items.find_unresolved_by_file_hash = AsyncMock(return_value=make_review_item())

        result = await DedupGuard(work_orders, review_items).is_already_processed(PDF_HASH, "ws1")

        assert result.found_in == FoundIn.WORK_ORDER
        review_items.find_unresolved_by_file_hash.assert_not_called()

    @pytest.mark.asyncio
    async def test_work_order_lookup_failure_falls_through(self):
        """Test a work order lookup failure falls through to the review queue."""
        work_orders = MagicMock()
        work_orders.find_by_file_hash = AsyncMock(side_effect=RuntimeError("no file_hash column"))
        review_items = InMemoryReviewItemStore()
        await review_items.insert(make_review_item())

        result = await DedupGuard(work_orders, review_items).is_already_processed(PDF_HASH, "ws1")
        assert result.found_in == FoundIn.REVIEW_QUEUE

    @pytest.mark.asyncio
    async def test_both_lookups_failing_is_not_found(self):
        """Test both lookups failing is not a duplicate."""
        work_orders = MagicMock()
        work_orders.find_by_file_hash = AsyncMock(side_effect=RuntimeError("down"))
        review_items = MagicMock()
        review_items.find_unresolved_by_file_hash = AsyncMock(side_effect=RuntimeError("down"))

        result = await DedupGuard(work_orders, review_items).is_already_processed(PDF_HASH, "ws1")
        assert result.exists is False

    @pytest.mark.asyncio
    async def test_resolved_review_item_is_not_a_duplicate(self):
        """Test a resolved review item is not a duplicate."""
        review_items = InMemoryReviewItemStore()
        await review_items.insert(make_review_item(resolved=True))
        result = await DedupGuard(InMemoryWorkOrderStore(), review_items).is_already_processed(PDF_HASH, "ws1")
        assert result.exists is False
