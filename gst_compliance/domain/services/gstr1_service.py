# gst_compliance/domain/services/gstr1_service.py
"""
GSTR-1 (outward supplies) aggregation.

Classification of each regular invoice in the period:

- B2B   buyer GSTIN present and exactly 15 characters; grouped by ``ctin``.
- B2CL  no buyer GSTIN, inter-state, invoice value above the large-value
        threshold (Rs 2.5 lakh); grouped by place of supply.
- B2CS  everything else, folded into running sums per
        (supply type, place of supply, rate). Individual invoices are not kept.

The HSN summary covers every line of every accepted invoice.

Inter-state for B2CL/B2CS is decided by comparing the resolved place of
supply with the supplier's state (first two digits of the filing GSTIN),
never the raw buyer state code.

A record missing required fields is skipped and listed in ``omissions``;
the rest of the batch is still filed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from gst_compliance.config.settings import settings
from gst_compliance.core.errors import ValidationError
from gst_compliance.domain.models.gstr1 import (
    Gstr1B2BEntry,
    Gstr1B2BInvoice,
    Gstr1B2CLEntry,
    Gstr1B2CLInvoice,
    Gstr1B2CSEntry,
    Gstr1HsnEntry,
    Gstr1HsnSection,
    Gstr1Item,
    Gstr1ItemDetail,
    Gstr1Payload,
    Gstr1Report,
    ReportOmission,
)
from gst_compliance.domain.services.gst_calculator import HSN_CODES, round_money, to_decimal
from gst_compliance.domain.services.gstin_pan_validation import is_valid_gstin

logger = logging.getLogger("gstr1_service")

ZERO = Decimal("0.00")

# Statutory GST slabs a back-calculated rate is snapped to.
STATUTORY_RATES = [Decimal(r) for r in ("0", "0.25", "3", "5", "12", "18", "28")]
_SNAP_TOLERANCE = Decimal("0.5")

# Unit -> Unique Quantity Code used by the GST portal
UQC_CODES = {
    "GMS": "GMS",
    "GM": "GMS",
    "G": "GMS",
    "KGS": "KGS",
    "KG": "KGS",
    "NOS": "NOS",
    "PCS": "PCS",
    "PC": "PCS",
    "PRS": "PRS",
    "PAIR": "PRS",
    "SET": "SET",
    "SETS": "SET",
    "MTR": "MTR",
    "LTR": "LTR",
    "CTS": "OTH",  # carats have no UQC of their own
}


class InvoiceSource(Protocol):
    async def list_regular_for_period(self, start: date, end: date) -> list[dict[str, Any]]: ...

    async def list_items(self, invoice_ids: list[str]) -> dict[str, list[dict[str, Any]]]: ...


class _SkipRecord(Exception):
    pass


@dataclass
class _Line:
    hsn: str
    desc: str
    unit: str
    qty: Decimal
    txval: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    cess: Decimal
    stored_rate: Decimal | None

    @property
    def tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst + self.cess


@dataclass
class _Invoice:
    id: str
    number: str
    inv_date: date
    ctin: str
    pos: str
    value: Decimal
    reverse_charge: bool
    lines: list[_Line] = field(default_factory=list)


# ---------- helpers ----------


def effective_rate(
    taxable,
    cgst,
    sgst,
    igst,
    stored_rate=None,
) -> Decimal:
    """
    GST rate for a line: the stored rate when present, otherwise
    ``(cgst + sgst + igst) / taxable * 100`` snapped to the nearest slab.

    Back-calculation from rounded paise can sit between two slabs for
    small lines; the stored rate is always preferred.
    """
    if stored_rate is not None:
        rate = to_decimal(stored_rate, "gst_rate")
        if rate > 0:
            return rate

    taxable = to_decimal(taxable)
    if taxable <= 0:
        return Decimal("0")

    raw = (to_decimal(cgst) + to_decimal(sgst) + to_decimal(igst)) * 100 / taxable
    nearest = min(STATUTORY_RATES, key=lambda r: abs(r - raw))
    if abs(nearest - raw) <= _SNAP_TOLERANCE:
        return nearest
    return raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def filing_period(end: date) -> str:
    return f"{end.month:02d}{end.year}"


def uqc_for_unit(unit: str | None) -> str:
    return UQC_CODES.get((unit or "").strip().upper(), "OTH")


def _normalize_pos(raw) -> str:
    """Reduce ``"Maharashtra (27)"`` / ``"27"`` / ``27`` to a 2-digit code."""
    if raw is None:
        return ""
    raw = str(raw).strip()
    if not raw:
        return ""
    m = re.search(r"\b(\d{1,2})\b", raw)
    if m:
        return m.group(1).zfill(2)
    return ""


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise _SkipRecord(f"invalid invoice_date {value!r}")


def _amount(record: dict, key: str, required: bool = False) -> Decimal:
    value = record.get(key)
    if value is None or value == "":
        if required:
            raise _SkipRecord(f"missing {key}")
        return ZERO
    try:
        return round_money(value)
    except ValidationError as exc:
        raise _SkipRecord(str(exc)) from exc


def _parse_line(item: dict) -> _Line:
    stored = item.get("gst_rate")
    try:
        qty = to_decimal(item.get("quantity"), "quantity")
        stored_rate = to_decimal(stored, "gst_rate") if stored not in (None, "") else None
    except ValidationError as exc:
        raise _SkipRecord(str(exc)) from exc

    return _Line(
        hsn=str(item.get("hsn_code") or HSN_CODES["DEFAULT"]).strip(),
        desc=(item.get("description") or "").split(" - ")[0].strip(),
        unit=item.get("unit") or "",
        qty=qty,
        txval=_amount(item, "taxable_amount", required=True),
        cgst=_amount(item, "cgst_amount"),
        sgst=_amount(item, "sgst_amount"),
        igst=_amount(item, "igst_amount"),
        cess=_amount(item, "cess_amount"),
        stored_rate=stored_rate,
    )


def _parse_invoice(record: dict, items: list[dict], supplier_state: str) -> _Invoice:
    number = (record.get("invoice_number") or "").strip()
    if not number:
        raise _SkipRecord("missing invoice_number")
    inv_date = _parse_date(record.get("invoice_date"))
    if not items:
        raise _SkipRecord("no line items")

    lines = [_parse_line(it) for it in items]
    ctin = (record.get("buyer_gstin") or "").strip().upper()

    pos = (
        _normalize_pos(record.get("place_of_supply"))
        or _normalize_pos(record.get("buyer_state_code"))
        or (ctin[:2] if len(ctin) >= 2 and ctin[:2].isdigit() else "")
        or supplier_state
    )

    value = _amount(record, "grand_total")
    if value <= 0:
        value = sum((ln.txval + ln.tax for ln in lines), ZERO)

    return _Invoice(
        id=str(record.get("id") or number),
        number=number,
        inv_date=inv_date,
        ctin=ctin,
        pos=pos,
        value=value,
        reverse_charge=bool(record.get("is_reverse_charge")),
        lines=lines,
    )


def _items_by_rate(lines: list[_Line]) -> list[Gstr1Item]:
    buckets: dict[Decimal, Gstr1ItemDetail] = {}
    for ln in lines:
        rate = effective_rate(ln.txval, ln.cgst, ln.sgst, ln.igst, ln.stored_rate)
        det = buckets.get(rate)
        if det is None:
            det = buckets[rate] = Gstr1ItemDetail(txval=ZERO, rt=rate)
        det.txval += ln.txval
        det.iamt += ln.igst
        det.camt += ln.cgst
        det.samt += ln.sgst
        det.csamt += ln.cess
    return [Gstr1Item(num=i, itm_det=det) for i, det in enumerate(buckets.values(), start=1)]


# ---------- Builder ----------


def aggregate_invoices(
    gstin: str,
    start: date,
    end: date,
    records: list[dict[str, Any]],
    items_by_invoice: dict[str, list[dict[str, Any]]],
    b2cl_threshold: Decimal | None = None,
) -> Gstr1Report:
    """Build the filing from already-fetched invoice and item records."""
    threshold = to_decimal(
        b2cl_threshold if b2cl_threshold is not None else settings.B2CL_THRESHOLD
    )
    supplier_state = gstin[:2]

    b2b_index: dict[str, list[Gstr1B2BInvoice]] = {}
    b2cl_index: dict[str, list[Gstr1B2CLInvoice]] = {}
    b2cs_index: dict[tuple[str, str, Decimal], Gstr1B2CSEntry] = {}
    hsn_index: dict[str, Gstr1HsnEntry] = {}
    omissions: list[ReportOmission] = []
    b2cs_invoices = 0

    for record in records:
        record_id = str(record.get("id") or record.get("invoice_number") or "?")
        try:
            inv = _parse_invoice(record, items_by_invoice.get(record_id, []), supplier_state)
        except _SkipRecord as exc:
            logger.warning("GSTR-1: skipping invoice %s: %s", record_id, exc)
            omissions.append(ReportOmission(id=record_id, reason=str(exc)))
            continue

        if not (start <= inv.inv_date <= end):
            omissions.append(ReportOmission(id=inv.id, reason="invoice_date outside period"))
            continue

        idt = inv.inv_date.strftime("%d-%m-%Y")
        inter_state = inv.pos != supplier_state

        if len(inv.ctin) == 15:
            b2b_index.setdefault(inv.ctin, []).append(
                Gstr1B2BInvoice(
                    inum=inv.number,
                    idt=idt,
                    val=inv.value,
                    pos=inv.pos,
                    rchrg="Y" if inv.reverse_charge else "N",
                    itms=_items_by_rate(inv.lines),
                )
            )
        elif not inv.ctin and inter_state and inv.value > threshold:
            b2cl_index.setdefault(inv.pos, []).append(
                Gstr1B2CLInvoice(inum=inv.number, idt=idt, val=inv.value, itms=_items_by_rate(inv.lines))
            )
        else:
            b2cs_invoices += 1
            sply_ty = "INTER" if inter_state else "INTRA"
            for ln in inv.lines:
                rate = effective_rate(ln.txval, ln.cgst, ln.sgst, ln.igst, ln.stored_rate)
                key = (sply_ty, inv.pos, rate)
                entry = b2cs_index.get(key)
                if entry is None:
                    entry = b2cs_index[key] = Gstr1B2CSEntry(sply_ty=sply_ty, rt=rate, pos=inv.pos)
                entry.txval += ln.txval
                entry.iamt += ln.igst
                entry.camt += ln.cgst
                entry.samt += ln.sgst
                entry.csamt += ln.cess

        for ln in inv.lines:
            hsn = hsn_index.get(ln.hsn)
            if hsn is None:
                hsn = hsn_index[ln.hsn] = Gstr1HsnEntry(
                    num=len(hsn_index) + 1, hsn_sc=ln.hsn, uqc=uqc_for_unit(ln.unit)
                )
            if not hsn.desc and ln.desc:
                hsn.desc = ln.desc
            hsn.qty += ln.qty
            hsn.txval += ln.txval
            hsn.iamt += ln.igst
            hsn.camt += ln.cgst
            hsn.samt += ln.sgst
            hsn.csamt += ln.cess
            hsn.val += ln.txval + ln.tax

    payload = Gstr1Payload(
        gstin=gstin,
        fp=filing_period(end),
        b2b=[Gstr1B2BEntry(ctin=c, inv=invs) for c, invs in b2b_index.items()],
        b2cl=[Gstr1B2CLEntry(pos=p, inv=invs) for p, invs in b2cl_index.items()],
        b2cs=list(b2cs_index.values()),
        hsn=Gstr1HsnSection(data=list(hsn_index.values())),
    )

    return Gstr1Report(
        payload=payload,
        omissions=omissions,
        summary=summarize_payload(payload, b2cs_invoices, len(omissions)),
    )


async def build_filing_report(
    gstin: str,
    start: date,
    end: date,
    repo: InvoiceSource,
    b2cl_threshold: Decimal | None = None,
) -> Gstr1Report:
    """Fetch regular invoices dated within ``[start, end]`` and build GSTR-1."""
    gstin = (gstin or "").strip().upper()
    if not is_valid_gstin(gstin):
        raise ValidationError(f"invalid registrant GSTIN: {gstin!r}", field="gstin")
    if start > end:
        raise ValidationError("start date is after end date", field="start")

    records = await repo.list_regular_for_period(start, end)
    ids = [str(r.get("id")) for r in records if r.get("id") is not None]
    items = await repo.list_items(ids)

    report = aggregate_invoices(gstin, start, end, records, items, b2cl_threshold)
    logger.info(
        "GSTR-1 %s %s: %d invoices, %d omitted",
        gstin, report.payload.fp, len(records), len(report.omissions),
    )
    return report


# ---------- Preview ----------


def summarize_payload(payload: Gstr1Payload, b2cs_invoices: int = 0, omitted: int = 0) -> dict:
    total_txval = ZERO
    total_tax = ZERO
    for entry in payload.b2b:
        for inv in entry.inv:
            for it in inv.itms:
                total_txval += it.itm_det.txval
                total_tax += it.itm_det.iamt + it.itm_det.camt + it.itm_det.samt + it.itm_det.csamt
    for entry in payload.b2cl:
        for inv in entry.inv:
            for it in inv.itms:
                total_txval += it.itm_det.txval
                total_tax += it.itm_det.iamt + it.itm_det.camt + it.itm_det.samt + it.itm_det.csamt
    for cs in payload.b2cs:
        total_txval += cs.txval
        total_tax += cs.iamt + cs.camt + cs.samt + cs.csamt

    return {
        "gstin": payload.gstin,
        "fp": payload.fp,
        "b2b_parties": len(payload.b2b),
        "b2b_invoices": sum(len(e.inv) for e in payload.b2b),
        "b2cl_invoices": sum(len(e.inv) for e in payload.b2cl),
        "b2cs_invoices": b2cs_invoices,
        "b2cs_buckets": len(payload.b2cs),
        "hsn_codes": len(payload.hsn.data),
        "omitted": omitted,
        "total_txval": round_money(total_txval),
        "total_tax": round_money(total_tax),
    }


def render_gstr1_text(summary: dict) -> str:
    """Plain-text preview of a GSTR-1 summary."""

    def fmt(v) -> str:
        return f"₹{float(v or 0):,.2f}"

    period = summary.get("fp", "")
    if len(period) == 6:
        # MMYYYY -> YYYY-MM
        period_str = f"{period[2:]}-{period[0:2]}"
    else:
        period_str = period or "-"

    lines = [
        f"GSTR-1 preview for period {period_str}",
        f"GSTIN: {summary.get('gstin', '-')}",
        "",
        f"B2B parties (GSTINs): {summary.get('b2b_parties', 0)}",
        f"B2B invoices: {summary.get('b2b_invoices', 0)}",
        f"B2CL invoices: {summary.get('b2cl_invoices', 0)}",
        f"B2CS invoices: {summary.get('b2cs_invoices', 0)} in {summary.get('b2cs_buckets', 0)} buckets",
        f"HSN codes: {summary.get('hsn_codes', 0)}",
        f"Total taxable value: {fmt(summary.get('total_txval'))}",
        f"Total tax: {fmt(summary.get('total_tax'))}",
    ]
    if summary.get("omitted"):
        lines.append(f"Skipped records: {summary['omitted']}")

    return "\n".join(lines)
