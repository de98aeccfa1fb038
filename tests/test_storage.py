"""
Tests for the key-value backends and the versioned collection store.
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from invoicescanner.models.audit import AuditEventType
from invoicescanner.models.document import DocumentVariant
from invoicescanner.services.storage import (
    STORAGE_KEYS,
    CollectionStore,
    IncompleteDraftError,
    InMemoryKeyValueStore,
    LocalKeyValueStore,
    PersistWriteFailedError,
    StorageError,
)
from tests.conftest import StepClock, make_invoice_draft, make_utility_bill_draft


class TestLocalKeyValueStore:
    """Tests for the directory-backed store."""

    @pytest.mark.asyncio
    async def test_missing_key_reads_none(self, tmp_path):
        store = LocalKeyValueStore(tmp_path)
        assert await store.get("nothing_here") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, tmp_path):
        store = LocalKeyValueStore(tmp_path / "nested")
        await store.set("data_v1", '[{"a": 1}]')
        assert await store.get("data_v1") == '[{"a": 1}]'
        assert (tmp_path / "nested" / "data_v1.json").exists()

    @pytest.mark.asyncio
    async def test_set_replaces_whole_value(self, tmp_path):
        store = LocalKeyValueStore(tmp_path)
        await store.set("k", "a much longer first value")
        await store.set("k", "short")
        assert await store.get("k") == "short"
        # No temp files left behind
        assert [p.name for p in tmp_path.iterdir()] == ["k.json"]

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = LocalKeyValueStore(tmp_path)
        await store.set("k", "v")
        assert await store.delete("k") is True
        assert await store.delete("k") is False
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_non_utf8_file_is_storage_error(self, tmp_path):
        (tmp_path / "k.json").write_bytes(b"\xff\xfe[garbage")
        store = LocalKeyValueStore(tmp_path)
        with pytest.raises(StorageError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_rejects_path_like_keys(self, tmp_path):
        store = LocalKeyValueStore(tmp_path)
        with pytest.raises(ValueError):
            await store.get("../escape")

    @pytest.mark.asyncio
    async def test_write_failure_is_persist_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = LocalKeyValueStore(blocker / "sub")
        with pytest.raises(PersistWriteFailedError):
            await store.set("k", "v")


class TestCollectionStoreLoad:
    """Tests for loading persisted collections."""

    def test_storage_keys_are_versioned(self):
        assert STORAGE_KEYS[DocumentVariant.INVOICE] == "invoicescanner_data_v2"
        assert STORAGE_KEYS[DocumentVariant.UTILITY_BILL] == "meterbill_data_v1"

    @pytest.mark.asyncio
    async def test_absent_key_loads_empty(self, invoice_store):
        assert await invoice_store.load() == []

    @pytest.mark.asyncio
    async def test_corrupt_payload_loads_empty(self, audit_logger):
        backend = InMemoryKeyValueStore({"invoicescanner_data_v2": "{not json"})
        store = CollectionStore(backend, DocumentVariant.INVOICE, audit_logger)

        assert await store.load() == []
        event_types = [e.event_type for e in audit_logger.events]
        assert AuditEventType.COLLECTION_LOAD_FAILED in event_types
        # The unreadable payload is left where it was
        assert backend.raw("invoicescanner_data_v2") == "{not json"

    @pytest.mark.asyncio
    async def test_non_utf8_file_loads_empty(self, tmp_path, audit_logger):
        (tmp_path / "invoicescanner_data_v2.json").write_bytes(b"\xff\xfe[garbage")
        store = CollectionStore(LocalKeyValueStore(tmp_path), DocumentVariant.INVOICE, audit_logger)

        assert await store.load() == []
        assert AuditEventType.COLLECTION_LOAD_FAILED in [e.event_type for e in audit_logger.events]

    @pytest.mark.asyncio
    async def test_old_shape_is_not_read(self, audit_logger):
        """Records of another shape under the current key are rejected."""
        legacy = json.dumps([{"id": "x", "vendor": "Old Co", "amount": 5}])
        backend = InMemoryKeyValueStore({"invoicescanner_data_v2": legacy})
        store = CollectionStore(backend, DocumentVariant.INVOICE, audit_logger)
        assert await store.load() == []

    @pytest.mark.asyncio
    async def test_other_version_key_is_ignored(self, audit_logger):
        backend = InMemoryKeyValueStore({"invoicescanner_data_v1": "[]"})
        store = CollectionStore(backend, DocumentVariant.INVOICE, audit_logger)
        assert await store.load() == []
        assert backend.raw("invoicescanner_data_v1") == "[]"

    @pytest.mark.asyncio
    async def test_round_trip_through_backend(self, backend, audit_logger, invoice_store):
        record = await invoice_store.commit(make_invoice_draft())

        reloaded = CollectionStore(backend, DocumentVariant.INVOICE, audit_logger)
        records = await reloaded.load()
        assert records == [record]
        assert records[0].total_amount == Decimal("120.00")


class TestCollectionStoreCommit:
    """Tests for committing drafts."""

    @pytest.mark.asyncio
    async def test_newest_first(self, invoice_store):
        first = await invoice_store.commit(make_invoice_draft(invoice_number="A"))
        second = await invoice_store.commit(make_invoice_draft(invoice_number="B"))
        assert invoice_store.records == [second, first]
        assert second.scanned_at >= first.scanned_at

    @pytest.mark.asyncio
    async def test_duplicate_drafts_get_distinct_ids(self, invoice_store):
        draft = make_invoice_draft()
        a = await invoice_store.commit(draft)
        b = await invoice_store.commit(draft)
        assert a.id != b.id
        assert len(invoice_store) == 2

    @pytest.mark.asyncio
    async def test_id_collision_is_retried(self, backend, audit_logger):
        ids = iter(["same", "same", "other"])
        store = CollectionStore(
            backend, DocumentVariant.INVOICE, audit_logger, id_factory=lambda: next(ids)
        )
        first = await store.commit(make_invoice_draft())
        second = await store.commit(make_invoice_draft())
        assert (first.id, second.id) == ("same", "other")

    @pytest.mark.asyncio
    async def test_clock_going_backwards(self, backend, audit_logger):
        clock = StepClock()
        store = CollectionStore(backend, DocumentVariant.INVOICE, audit_logger, clock=clock)
        first = await store.commit(make_invoice_draft())
        clock.now = first.scanned_at - timedelta(hours=1)
        second = await store.commit(make_invoice_draft())
        assert second.scanned_at == first.scanned_at

    @pytest.mark.asyncio
    async def test_naive_clock_is_treated_as_utc(self, backend, audit_logger):
        store = CollectionStore(
            backend,
            DocumentVariant.INVOICE,
            audit_logger,
            clock=lambda: datetime(2024, 1, 1, 8, 0),
        )
        record = await store.commit(make_invoice_draft())
        assert record.scanned_at == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_incomplete_draft_rejected(self, backend, invoice_store):
        with pytest.raises(IncompleteDraftError) as exc_info:
            await invoice_store.commit(make_invoice_draft(vendor_name=None, currency=None))
        assert exc_info.value.missing_fields == ["vendor_name", "currency"]
        assert backend.write_count == 0

    @pytest.mark.asyncio
    async def test_invalid_billing_month_rejected(self, utility_store):
        with pytest.raises(IncompleteDraftError) as exc_info:
            await utility_store.commit(make_utility_bill_draft(billing_month="13-2024"))
        assert exc_info.value.missing_fields == ["billing_month"]

    @pytest.mark.asyncio
    async def test_inconsistent_draft_still_commits(self, invoice_store):
        record = await invoice_store.commit(make_invoice_draft(total_amount=Decimal("999")))
        assert record.total_amount == Decimal("999")

    @pytest.mark.asyncio
    async def test_variant_mismatch(self, invoice_store):
        with pytest.raises(ValueError):
            await invoice_store.commit(make_utility_bill_draft())

    @pytest.mark.asyncio
    async def test_write_failure_leaves_collection_unchanged(self, backend, invoice_store):
        existing = await invoice_store.commit(make_invoice_draft(invoice_number="A"))
        stored_before = backend.raw(invoice_store.storage_key)

        backend.fail_writes = True
        with pytest.raises(PersistWriteFailedError):
            await invoice_store.commit(make_invoice_draft(invoice_number="B"))

        assert invoice_store.records == [existing]
        assert backend.raw(invoice_store.storage_key) == stored_before

    @pytest.mark.asyncio
    async def test_payload_is_json_array(self, backend, utility_store):
        await utility_store.commit(make_utility_bill_draft())
        payload = json.loads(backend.raw("meterbill_data_v1"))
        assert isinstance(payload, list)
        assert payload[0]["meter_readings"] == {"high_tariff": "1000", "low_tariff": "500"}
        assert payload[0]["total_amount"] == "110.00"

    @pytest.mark.asyncio
    async def test_records_is_a_copy(self, invoice_store):
        await invoice_store.commit(make_invoice_draft())
        invoice_store.records.clear()
        assert len(invoice_store) == 1


class TestCollectionStoreClearAndSummary:
    """Tests for clearing and dashboard figures."""

    @pytest.mark.asyncio
    async def test_clear(self, backend, invoice_store):
        await invoice_store.commit(make_invoice_draft())
        await invoice_store.clear()
        assert invoice_store.records == []
        assert backend.raw(invoice_store.storage_key) is None

    @pytest.mark.asyncio
    async def test_summary(self, invoice_store):
        await invoice_store.commit(make_invoice_draft(total_amount=Decimal("120.00")))
        await invoice_store.commit(make_invoice_draft(total_amount=Decimal("30.50")))
        summary = invoice_store.summary()
        assert summary.record_count == 2
        assert summary.total_value == Decimal("150.50")

    def test_empty_summary(self, invoice_store):
        summary = invoice_store.summary()
        assert summary.record_count == 0
        assert summary.total_value == Decimal("0")
