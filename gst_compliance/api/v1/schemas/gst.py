# gst_compliance/api/v1/schemas/gst.py
"""Request and response schemas for GST endpoints."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Tax computation
# ---------------------------------------------------------------------------

class TaxRequest(BaseModel):
    taxable_amount: Decimal = Field(description="Taxable value in INR")
    seller_state_code: str = Field(description="2-digit state code of the seller")
    buyer_state_code: str = Field(default="", description="2-digit state code of the buyer")
    gst_rate: Decimal = Field(default=Decimal("3"), ge=0, le=100)
    cess_rate: Decimal = Field(default=Decimal("0"), ge=0)


class TaxResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    taxable_amount: Decimal
    cgst_rate: Decimal
    cgst_amount: Decimal
    sgst_rate: Decimal
    sgst_amount: Decimal
    igst_rate: Decimal
    igst_amount: Decimal
    cess_rate: Decimal
    cess_amount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    is_inter_state: bool
    amount_in_words: str = ""


class AmountInWordsResponse(BaseModel):
    amount: Decimal
    words: str
    formatted: str
