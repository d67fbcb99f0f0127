# gst_compliance/domain/services/document_sequencer.py
"""
Fiscal document numbering.

Formats:
  Invoice            INV/<FY start yy><FY end yy>/<5 digits>   e.g. INV/2526/00042
  Purchase order     PO/<YYMM>/<4 digits>
  Goods-received     GRN/<YYMM>/<4 digits>
  Delivery challan   DC/<YYMM>/<5 digits>
  Credit note        CN/<YYMM>/<5 digits>

Counters are named ``<alias>_<periodKey>`` (``dc_2501``) and are only ever
incremented through the counter store's atomic ``increment``. A number,
once returned, is consumed even if the caller's document creation fails.

If the counter store is unreachable a ``<PREFIX>/TMP/<epoch-ms>-<8 hex>`` number is
returned instead and a warning is logged; such numbers are not part of the
gapless sequence and ``is_fallback_number`` identifies them.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Callable, Literal, Protocol

from gst_compliance.core.errors import StoreUnavailableError, ValidationError
from gst_compliance.domain.models.tax import (
    ChallanDocument,
    DocumentNumberAlreadyAssigned,
    InvoiceDocument,
    TaxableDocument,
)

logger = logging.getLogger("document_sequencer")

FALLBACK_MARKER = "TMP"
_PERIOD_KEY_RE = re.compile(r"^\d{4}$")
_FALLBACK_SERIAL_RE = re.compile(r"^\d+-[0-9a-f]{8}$")


class CounterStore(Protocol):
    async def increment(self, name: str, *, prefix: str, padding: int) -> int: ...


@dataclass(frozen=True)
class SequenceFamily:
    alias: str
    prefix: str
    padding: int
    period: Literal["fy", "yymm"]


FAMILIES: dict[str, SequenceFamily] = {
    "invoice": SequenceFamily("inv", "INV", 5, "fy"),
    "purchase_order": SequenceFamily("po", "PO", 4, "yymm"),
    "grn": SequenceFamily("grn", "GRN", 4, "yymm"),
    "delivery_challan": SequenceFamily("dc", "DC", 5, "yymm"),
    "credit_note": SequenceFamily("cn", "CN", 5, "yymm"),
}

_BY_ALIAS = {fam.alias: fam for fam in FAMILIES.values()}


def resolve_family(family: str) -> SequenceFamily:
    key = (family or "").strip().lower()
    fam = FAMILIES.get(key) or _BY_ALIAS.get(key)
    if fam is None:
        raise ValidationError(f"unknown document family: {family!r}", field="family")
    return fam


def financial_year_key(on_date: date) -> str:
    """Indian FY runs April to March: 2025-04-01 .. 2026-03-31 -> ``2526``."""
    start = on_date.year if on_date.month >= 4 else on_date.year - 1
    return f"{start % 100:02d}{(start + 1) % 100:02d}"


def month_key(on_date: date) -> str:
    return f"{on_date.year % 100:02d}{on_date.month:02d}"


def period_key_for(family: str | SequenceFamily, on_date: date) -> str:
    fam = family if isinstance(family, SequenceFamily) else resolve_family(family)
    if fam.period == "fy":
        return financial_year_key(on_date)
    return month_key(on_date)


def format_number(family: SequenceFamily, period_key: str, value: int) -> str:
    return f"{family.prefix}/{period_key}/{value:0{family.padding}d}"


def fallback_number(family: SequenceFamily, now_ms: int | None = None) -> str:
    # random suffix: two fallbacks in the same millisecond must still differ
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{family.prefix}/{FALLBACK_MARKER}/{now_ms}-{uuid.uuid4().hex[:8]}"


def is_fallback_number(number: str | None) -> bool:
    if not number:
        return False
    parts = number.split("/")
    return (
        len(parts) == 3
        and parts[1] == FALLBACK_MARKER
        and bool(_FALLBACK_SERIAL_RE.match(parts[2]))
    )


class DocumentSequencer:
    """Hands out document numbers from an atomic counter store."""

    def __init__(
        self,
        counter: CounterStore,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.counter = counter
        self.today = today

    async def next_number(
        self,
        family: str,
        period_key: str | None = None,
        *,
        on_date: date | None = None,
    ) -> str:
        fam = resolve_family(family)
        key = period_key or period_key_for(fam, on_date or self.today())
        if not _PERIOD_KEY_RE.match(key):
            raise ValidationError(f"period key must be 4 digits, got {key!r}", field="period_key")

        name = f"{fam.alias}_{key}"
        try:
            value = await self.counter.increment(name, prefix=fam.prefix, padding=fam.padding)
        except (StoreUnavailableError, ConnectionError, TimeoutError, OSError) as exc:
            number = fallback_number(fam)
            logger.warning(
                "Counter %s unavailable (%s); issued fallback number %s", name, exc, number
            )
            return number

        number = format_number(fam, key, value)
        logger.info("Issued document number %s", number)
        return number


def family_for_document(document: TaxableDocument) -> str:
    match document:
        case InvoiceDocument():
            return "invoice"
        case ChallanDocument():
            return "delivery_challan"
        case _:
            raise TypeError(f"not a taxable document: {type(document).__name__}")


async def assign_document_number(
    sequencer: DocumentSequencer,
    document: TaxableDocument,
) -> TaxableDocument:
    """Give a draft document its permanent number (exactly once)."""
    if not document.is_draft:
        raise DocumentNumberAlreadyAssigned(f"document already numbered as {document.number}")
    number = await sequencer.next_number(family_for_document(document))
    return document.with_number(number)
