# tests/test_record_store.py
"""Tests for the in-memory record store."""

import asyncio
from datetime import date

import pytest

from gst_compliance.core.errors import DuplicateRecordError
from gst_compliance.infrastructure.db.record_store import AtomicIncrementStore
from gst_compliance.infrastructure.db.repositories import InvoiceRepository


def test_create_get_update(event_loop, store):
    created = event_loop.run_until_complete(store.create("invoices", {"invoice_number": "INV/1"}))
    assert created["id"]

    fetched = event_loop.run_until_complete(store.get("invoices", created["id"]))
    assert fetched["invoice_number"] == "INV/1"

    updated = event_loop.run_until_complete(
        store.update("invoices", created["id"], {"status": "paid"})
    )
    assert updated["status"] == "paid"
    assert event_loop.run_until_complete(store.get("invoices", "missing")) is None


def test_update_missing_record(event_loop, store):
    with pytest.raises(KeyError):
        event_loop.run_until_complete(store.update("invoices", "nope", {"x": 1}))


def test_returned_records_are_copies(event_loop, store):
    created = event_loop.run_until_complete(store.create("invoices", {"n": 1}))
    created["n"] = 99
    assert event_loop.run_until_complete(store.get("invoices", created["id"]))["n"] == 1


def test_unique_sequence_name(event_loop, store):
    event_loop.run_until_complete(store.create("number_sequences", {"name": "dc_2501"}))
    with pytest.raises(DuplicateRecordError):
        event_loop.run_until_complete(store.create("number_sequences", {"name": "dc_2501"}))


def test_compare_and_set(event_loop, store):
    row = event_loop.run_until_complete(
        store.create("number_sequences", {"name": "dc_2501", "current_value": 1})
    )
    assert event_loop.run_until_complete(
        store.compare_and_set("number_sequences", row["id"], "current_value", 1, 2)
    ) is True
    assert event_loop.run_until_complete(
        store.compare_and_set("number_sequences", row["id"], "current_value", 1, 3)
    ) is False
    assert event_loop.run_until_complete(store.get("number_sequences", row["id"]))["current_value"] == 2


def test_atomic_increment_under_concurrency(event_loop, store):
    assert isinstance(store, AtomicIncrementStore)

    async def burst():
        return await asyncio.gather(
            *(
                store.increment("number_sequences", {"name": "po_2501"}, "current_value", {"prefix": "PO"})
                for _ in range(50)
            )
        )

    values = event_loop.run_until_complete(burst())
    assert sorted(values) == list(range(1, 51))

    rows = event_loop.run_until_complete(store.query("number_sequences", {"name": "po_2501"}))
    assert len(rows) == 1
    assert rows[0]["current_value"] == 50
    assert rows[0]["prefix"] == "PO"


def test_query_filters_and_sort(event_loop, store):
    for day, kind in [(20, "regular"), (5, "regular"), (12, "credit_note"), (28, "regular")]:
        event_loop.run_until_complete(
            store.create("invoices", {"invoice_date": date(2025, 1, day), "invoice_type": kind})
        )
    rows = event_loop.run_until_complete(
        store.query(
            "invoices",
            {
                "invoice_type": "regular",
                "invoice_date__gte": date(2025, 1, 1),
                "invoice_date__lte": date(2025, 1, 25),
            },
            sort="-invoice_date",
        )
    )
    assert [r["invoice_date"].day for r in rows] == [20, 5]


def test_invoice_repository_groups_items(event_loop, store):
    inv = event_loop.run_until_complete(
        store.create("invoices", {"invoice_date": date(2025, 1, 3), "invoice_type": "regular"})
    )
    event_loop.run_until_complete(store.create("invoice_items", {"invoice": inv["id"], "hsn_code": "7113"}))
    event_loop.run_until_complete(store.create("invoice_items", {"invoice": inv["id"], "hsn_code": "9988"}))
    event_loop.run_until_complete(store.create("invoice_items", {"invoice": "other", "hsn_code": "7113"}))

    repo = InvoiceRepository(store)
    invoices = event_loop.run_until_complete(
        repo.list_regular_for_period(date(2025, 1, 1), date(2025, 1, 31))
    )
    items = event_loop.run_until_complete(repo.list_items([inv["id"]]))

    assert [i["id"] for i in invoices] == [inv["id"]]
    assert len(items[inv["id"]]) == 2
    assert "other" not in items
    assert event_loop.run_until_complete(repo.list_items([])) == {}
