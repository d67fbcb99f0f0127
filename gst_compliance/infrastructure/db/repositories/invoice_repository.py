# gst_compliance/infrastructure/db/repositories/invoice_repository.py
"""Read access to persisted invoices for filing reports."""

from __future__ import annotations

from datetime import date
from typing import Any

from gst_compliance.infrastructure.db.record_store import RecordStore

INVOICES_COLLECTION = "invoices"
INVOICE_ITEMS_COLLECTION = "invoice_items"


class InvoiceRepository:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def list_regular_for_period(self, start: date, end: date) -> list[dict[str, Any]]:
        """Regular (non-cancelled, non-credit) invoices dated within ``[start, end]``."""
        return await self.store.query(
            INVOICES_COLLECTION,
            {
                "invoice_type": "regular",
                "invoice_date__gte": start,
                "invoice_date__lte": end,
            },
            sort="invoice_date",
        )

    async def list_items(self, invoice_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
        """Items for the given invoices, keyed by invoice id."""
        if not invoice_ids:
            return {}
        rows = await self.store.query(
            INVOICE_ITEMS_COLLECTION,
            {"invoice__in": list(invoice_ids)},
        )
        grouped: dict[str, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["invoice"], []).append(row)
        return grouped
