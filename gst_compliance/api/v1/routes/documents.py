# gst_compliance/api/v1/routes/documents.py
"""Document numbering endpoint."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query

from gst_compliance.api.v1.deps import get_document_sequencer
from gst_compliance.api.v1.envelope import ok
from gst_compliance.domain.services.document_sequencer import (
    DocumentSequencer,
    is_fallback_number,
    resolve_family,
)

logger = logging.getLogger("api.v1.documents")

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("/{family}/number", response_model=dict)
async def next_document_number(
    family: str,
    on_date: date | None = Query(None),
    period_key: str | None = Query(None, min_length=4, max_length=4),
    sequencer: DocumentSequencer = Depends(get_document_sequencer),
):
    """
    Issue the next number for ``invoice``, ``purchase_order``, ``grn``,
    ``delivery_challan`` or ``credit_note`` (short aliases accepted).

    ``fallback`` is true when the counter store was unreachable and a
    temporary number was issued instead.
    """
    fam = resolve_family(family)
    number = await sequencer.next_number(family, period_key, on_date=on_date)
    return ok(
        {
            "family": fam.alias,
            "number": number,
            "fallback": is_fallback_number(number),
        }
    )
