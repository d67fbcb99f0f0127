# gst_compliance/domain/models/tax.py
"""
Value types produced by the tax calculator and the documents that carry them.

``TaxableDocument`` is a closed union of ``InvoiceDocument`` and
``ChallanDocument``; consumers dispatch on the concrete class with ``match``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Literal, Union

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class TaxCalculationResult:
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


@dataclass(frozen=True)
class TaxLineItem:
    quantity: Decimal
    unit_price: Decimal
    taxable_amount: Decimal
    gst_rate: Decimal
    cess_rate: Decimal
    cgst_rate: Decimal
    cgst_amount: Decimal
    sgst_rate: Decimal
    sgst_amount: Decimal
    igst_rate: Decimal
    igst_amount: Decimal
    cess_amount: Decimal
    hsn_code: str = ""
    description: str = ""
    unit: str = "NOS"

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount + self.cess_amount


@dataclass(frozen=True)
class DocumentTotals:
    taxable_amount: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO
    cess_amount: Decimal = ZERO

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount + self.cess_amount

    @property
    def grand_total(self) -> Decimal:
        return self.taxable_amount + self.total_tax

    @classmethod
    def from_lines(cls, lines: tuple[TaxLineItem, ...] | list[TaxLineItem]) -> "DocumentTotals":
        # Per-line amounts are already rounded to paise, so plain sums are exact.
        return cls(
            taxable_amount=sum((ln.taxable_amount for ln in lines), ZERO),
            cgst_amount=sum((ln.cgst_amount for ln in lines), ZERO),
            sgst_amount=sum((ln.sgst_amount for ln in lines), ZERO),
            igst_amount=sum((ln.igst_amount for ln in lines), ZERO),
            cess_amount=sum((ln.cess_amount for ln in lines), ZERO),
        )


class ChallanPurpose(str, Enum):
    JOB_WORK = "job_work"
    EXHIBITION = "exhibition"
    SALES_RETURN = "sales_return"
    APPROVAL = "approval"
    OTHERS = "others"


class DocumentNumberAlreadyAssigned(Exception):
    """Raised when a permanent number is assigned to an already-numbered document."""


@dataclass(frozen=True)
class _DocumentBase:
    doc_date: date
    seller_state_code: str
    buyer_state_code: str
    items: tuple[TaxLineItem, ...] = ()
    buyer_gstin: str | None = None
    buyer_name: str = ""
    buyer_address: str = ""
    buyer_place: str = ""
    buyer_pincode: str = ""
    number: str | None = None
    id: str | None = None

    @property
    def totals(self) -> DocumentTotals:
        return DocumentTotals.from_lines(self.items)

    @property
    def is_draft(self) -> bool:
        return not self.number

    def with_number(self, number: str):
        """Return a copy carrying its permanent number; numbering happens once."""
        if self.number:
            raise DocumentNumberAlreadyAssigned(
                f"document already numbered as {self.number}"
            )
        return replace(self, number=number)


@dataclass(frozen=True)
class InvoiceDocument(_DocumentBase):
    kind: Literal["invoice"] = "invoice"
    place_of_supply: str = ""
    reverse_charge: bool = False
    invoice_type: str = "regular"


@dataclass(frozen=True)
class ChallanDocument(_DocumentBase):
    kind: Literal["challan"] = "challan"
    purpose: ChallanPurpose = ChallanPurpose.OTHERS
    consignor_name: str = ""
    place_of_supply: str = ""


TaxableDocument = Union[InvoiceDocument, ChallanDocument]


@dataclass
class ItemInput:
    """Raw line data handed over by the POS / catalogue collaborators."""

    quantity: Decimal
    unit_price: Decimal
    gst_rate: Decimal
    cess_rate: Decimal = ZERO
    discount: Decimal = ZERO
    hsn_code: str = ""
    description: str = ""
    unit: str = "NOS"
