# tests/test_document_sequencer.py
"""Tests for document numbering and the atomic counters behind it."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from gst_compliance.core.errors import StoreUnavailableError, ValidationError
from gst_compliance.domain.models.tax import DocumentNumberAlreadyAssigned, InvoiceDocument
from gst_compliance.domain.services.document_sequencer import (
    DocumentSequencer,
    assign_document_number,
    fallback_number,
    financial_year_key,
    is_fallback_number,
    period_key_for,
    resolve_family,
)
from gst_compliance.infrastructure.db.repositories import RecordStoreCounter, SequenceRepository


def _sequencer(store, today=date(2025, 1, 15)) -> DocumentSequencer:
    return DocumentSequencer(RecordStoreCounter(store), today=lambda: today)


class CompareAndSetOnlyStore:
    """Record store without a server-side increment."""

    def __init__(self, inner):
        self.inner = inner

    async def get(self, collection, record_id):
        return await self.inner.get(collection, record_id)

    async def create(self, collection, record):
        return await self.inner.create(collection, record)

    async def update(self, collection, record_id, partial):
        return await self.inner.update(collection, record_id, partial)

    async def query(self, collection, filter=None, sort=None):
        return await self.inner.query(collection, filter, sort)

    async def compare_and_set(self, collection, record_id, field, expected, new):
        return await self.inner.compare_and_set(collection, record_id, field, expected, new)



class TestPeriodKeys:
    def test_financial_year_boundaries(self):
        assert financial_year_key(date(2025, 4, 1)) == "2526"
        assert financial_year_key(date(2026, 3, 31)) == "2526"
        assert financial_year_key(date(2025, 3, 31)) == "2425"
        assert financial_year_key(date(2099, 12, 1)) == "9900"

    def test_period_key_per_family(self):
        assert period_key_for("invoice", date(2025, 1, 15)) == "2425"
        assert period_key_for("dc", date(2025, 1, 15)) == "2501"
        assert period_key_for("purchase_order", date(2025, 11, 3)) == "2511"

    def test_aliases_resolve(self):
        assert resolve_family("dc").prefix == "DC"
        assert resolve_family("Delivery_Challan").prefix == "DC"
        assert resolve_family("cn").padding == 5

    def test_unknown_family(self):
        with pytest.raises(ValidationError):
            resolve_family("quotation")


class TestNextNumber:
    def test_sequential_challan_numbers(self, event_loop, store):
        seq = _sequencer(store)
        first = event_loop.run_until_complete(seq.next_number("dc", "2501"))
        second = event_loop.run_until_complete(seq.next_number("dc", "2501"))
        assert first == "DC/2501/00001"
        assert second == "DC/2501/00002"

    def test_concurrent_calls_never_duplicate(self, event_loop, store):
        seq = _sequencer(store)

        async def burst():
            return await asyncio.gather(*(seq.next_number("dc", "2501") for _ in range(60)))

        numbers = event_loop.run_until_complete(burst())
        assert sorted(numbers) == [f"DC/2501/{i:05d}" for i in range(1, 61)]
        assert not any(is_fallback_number(n) for n in numbers)

    def test_compare_and_set_store_under_heavy_contention(self, event_loop, store):
        counter = RecordStoreCounter(CompareAndSetOnlyStore(store))
        seq = DocumentSequencer(counter, today=lambda: date(2025, 1, 15))

        async def burst():
            return await asyncio.gather(*(seq.next_number("dc", "2501") for _ in range(40)))

        numbers = event_loop.run_until_complete(burst())
        assert sorted(numbers) == [f"DC/2501/{i:05d}" for i in range(1, 41)]
        assert not any(is_fallback_number(n) for n in numbers)

    def test_periods_are_independent(self, event_loop, store):
        seq = _sequencer(store)
        a = event_loop.run_until_complete(seq.next_number("dc", "2501"))
        b = event_loop.run_until_complete(seq.next_number("dc", "2502"))
        assert a == "DC/2501/00001"
        assert b == "DC/2502/00001"

    def test_invoice_uses_financial_year(self, event_loop, store):
        seq = _sequencer(store)
        number = event_loop.run_until_complete(seq.next_number("invoice", on_date=date(2025, 4, 1)))
        assert number == "INV/2526/00001"

    def test_default_date_from_clock(self, event_loop, store):
        seq = _sequencer(store, today=date(2025, 1, 15))
        assert event_loop.run_until_complete(seq.next_number("po")) == "PO/2501/0001"
        assert event_loop.run_until_complete(seq.next_number("grn")) == "GRN/2501/0001"
        assert event_loop.run_until_complete(seq.next_number("credit_note")) == "CN/2501/00001"

    def test_bad_period_key(self, event_loop, store):
        seq = _sequencer(store)
        with pytest.raises(ValidationError) as exc:
            event_loop.run_until_complete(seq.next_number("dc", "25-1"))
        assert exc.value.field == "period_key"

    def test_fallback_when_store_unavailable(self, event_loop):
        counter = AsyncMock()
        counter.increment.side_effect = StoreUnavailableError("store down")
        seq = DocumentSequencer(counter)
        number = event_loop.run_until_complete(seq.next_number("dc", "2501"))
        assert number.startswith("DC/TMP/")
        assert is_fallback_number(number)

    def test_fallback_on_connection_error(self, event_loop):
        counter = AsyncMock()
        counter.increment.side_effect = ConnectionError("refused")
        seq = DocumentSequencer(counter)
        number = event_loop.run_until_complete(seq.next_number("invoice", "2526"))
        assert number.startswith("INV/TMP/")

    def test_fallbacks_in_the_same_millisecond_differ(self, event_loop):
        counter = AsyncMock()
        counter.increment.side_effect = StoreUnavailableError("store down")
        seq = DocumentSequencer(counter)

        async def burst():
            return await asyncio.gather(*(seq.next_number("dc", "2501") for _ in range(20)))

        with patch("gst_compliance.domain.services.document_sequencer.time.time", return_value=1736900000.5):
            numbers = event_loop.run_until_complete(burst())

        assert len(set(numbers)) == 20
        assert all(n.startswith("DC/TMP/1736900000500-") for n in numbers)
        assert all(is_fallback_number(n) for n in numbers)

    def test_fallback_number_shape(self):
        number = fallback_number(resolve_family("grn"), now_ms=1736900000500)
        assert number.startswith("GRN/TMP/1736900000500-")
        assert len(number.rsplit("-", 1)[1]) == 8

    def test_regular_numbers_are_not_fallbacks(self):
        assert is_fallback_number("DC/2501/00001") is False
        assert is_fallback_number("DC/TMP/00001") is False
        assert is_fallback_number(None) is False


class TestAssignNumber:
    def test_draft_gets_number_once(self, event_loop, store):
        seq = _sequencer(store)
        draft = InvoiceDocument(doc_date=date(2025, 1, 15), seller_state_code="27", buyer_state_code="27")
        numbered = event_loop.run_until_complete(assign_document_number(seq, draft))
        assert numbered.number == "INV/2425/00001"
        assert draft.is_draft

        with pytest.raises(DocumentNumberAlreadyAssigned):
            event_loop.run_until_complete(assign_document_number(seq, numbered))

    def test_with_number_refuses_renumbering(self, inter_state_invoice):
        with pytest.raises(DocumentNumberAlreadyAssigned):
            inter_state_invoice.with_number("INV/2425/00099")


class TestSequenceRepository:
    def test_single_upsert_statement(self, event_loop):
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one.return_value = 7
        db.execute.return_value = result

        value = event_loop.run_until_complete(
            SequenceRepository(db).increment("dc_2501", prefix="DC", padding=5)
        )
        assert value == 7
        db.commit.assert_awaited_once()

        stmt = db.execute.call_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (name) DO UPDATE" in sql
        assert "RETURNING number_sequences.current_value" in sql

    def test_database_error_reported_unavailable(self, event_loop):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("INSERT", {}, Exception("connection refused"))

        with pytest.raises(StoreUnavailableError):
            event_loop.run_until_complete(
                SequenceRepository(db).increment("dc_2501", prefix="DC", padding=5)
            )
        db.rollback.assert_awaited_once()


class TestRecordStoreCounter:
    def test_uses_atomic_increment_when_store_has_one(self, event_loop, store):
        counter = RecordStoreCounter(store)
        values = [
            event_loop.run_until_complete(counter.increment("dc_2501", prefix="DC", padding=5))
            for _ in range(3)
        ]
        assert values == [1, 2, 3]

        rows = event_loop.run_until_complete(store.query("number_sequences", {"name": "dc_2501"}))
        assert len(rows) == 1
        assert rows[0]["current_value"] == 3
        assert rows[0]["prefix"] == "DC"
        assert rows[0]["padding"] == 5

    def test_lost_races_back_off_with_jitter(self, event_loop):
        store = AsyncMock(spec=CompareAndSetOnlyStore)
        store.query.return_value = [{"id": "r1", "name": "dc_2501", "current_value": 3}]
        store.compare_and_set.side_effect = [False, False, True]
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        counter = RecordStoreCounter(store, backoff_seconds=0.001, sleep=fake_sleep)
        value = event_loop.run_until_complete(counter.increment("dc_2501", prefix="DC", padding=5))

        assert value == 4
        assert len(sleeps) == 2
        assert 0 <= sleeps[0] <= 0.002
        assert 0 <= sleeps[1] <= 0.004

    def test_gives_up_after_bounded_conflicts(self, event_loop):
        store = AsyncMock(spec=CompareAndSetOnlyStore)
        store.query.return_value = [{"id": "r1", "name": "dc_2501", "current_value": 3}]
        store.compare_and_set.return_value = False

        async def no_sleep(seconds):
            pass

        with pytest.raises(StoreUnavailableError):
            event_loop.run_until_complete(
                RecordStoreCounter(store, max_attempts=3, sleep=no_sleep).increment(
                    "dc_2501", prefix="DC", padding=5
                )
            )
        assert store.compare_and_set.await_count == 3

    def test_connection_error_wrapped(self, event_loop):
        store = AsyncMock(spec=CompareAndSetOnlyStore)
        store.query.side_effect = ConnectionError("unreachable")

        with pytest.raises(StoreUnavailableError):
            event_loop.run_until_complete(
                RecordStoreCounter(store).increment("dc_2501", prefix="DC", padding=5)
            )
