# gst_compliance/api/v1/routes/gst.py
"""
GST endpoints: tax computation, amount in words, GSTR-1 filing JSON.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from gst_compliance.api.v1.deps import get_invoice_repository
from gst_compliance.api.v1.envelope import ok
from gst_compliance.api.v1.schemas.gst import AmountInWordsResponse, TaxRequest, TaxResponse
from gst_compliance.config.settings import settings
from gst_compliance.domain.services.gst_calculator import amount_to_words, compute_tax, format_inr
from gst_compliance.domain.services.gstr1_service import build_filing_report, render_gstr1_text
from gst_compliance.infrastructure.db.repositories import InvoiceRepository

logger = logging.getLogger("api.v1.gst")

router = APIRouter(prefix="/gst", tags=["GST"])


@router.post("/tax", response_model=dict)
async def compute_tax_endpoint(body: TaxRequest):
    """Split GST into CGST/SGST or IGST for one taxable amount."""
    result = compute_tax(
        body.taxable_amount,
        body.seller_state_code,
        body.buyer_state_code,
        body.gst_rate,
        body.cess_rate,
    )
    resp = TaxResponse.model_validate(result)
    resp.amount_in_words = amount_to_words(result.grand_total)
    return ok(resp.model_dump(mode="json"))


@router.get("/amount-in-words", response_model=dict)
async def amount_in_words(
    amount: Decimal = Query(..., ge=0),
    currency: str = Query("Rupees"),
):
    resp = AmountInWordsResponse(
        amount=amount,
        words=amount_to_words(amount, currency),
        formatted=format_inr(amount),
    )
    return ok(resp.model_dump(mode="json"))


@router.get("/gstr1", response_model=dict)
async def gstr1_report(
    gstin: str = Query(..., min_length=15, max_length=15),
    start: date = Query(...),
    end: date = Query(...),
    repo: InvoiceRepository = Depends(get_invoice_repository),
):
    """
    Build the GSTR-1 filing JSON for regular invoices dated ``start..end``.

    Invoices that cannot be read are listed under ``omissions``.
    """
    report = await build_filing_report(gstin, start, end, repo, settings.B2CL_THRESHOLD)
    return ok(
        {
            "payload": report.payload.to_filing_json(),
            "omissions": [o.model_dump() for o in report.omissions],
            "summary": report.model_dump(mode="json")["summary"],
            "preview": render_gstr1_text(report.summary),
        }
    )
