# gst_compliance/api/v1/schemas/ewaybill.py
"""Request schemas for e-WayBill endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from gst_compliance.domain.models.ewaybill import (
    CancelReason,
    TransportMode,
    VehicleType,
    VehicleUpdateReason,
)
from gst_compliance.domain.models.tax import (
    ChallanDocument,
    ChallanPurpose,
    InvoiceDocument,
    ItemInput,
    TaxableDocument,
)
from gst_compliance.domain.services.ewaybill_flow import TransportDetails
from gst_compliance.domain.services.gst_calculator import compute_line_items


class LineItemSchema(BaseModel):
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    gst_rate: Decimal = Field(default=Decimal("3"), ge=0, le=100)
    cess_rate: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    hsn_code: str = ""
    description: str = ""
    unit: str = "NOS"


class DocumentSchema(BaseModel):
    """An already-numbered invoice or delivery challan."""

    kind: Literal["invoice", "challan"] = "invoice"
    number: str = Field(min_length=1, max_length=16)
    doc_date: date
    seller_state_code: str
    buyer_state_code: str = ""
    buyer_gstin: str | None = None
    buyer_name: str = ""
    buyer_address: str = ""
    buyer_place: str = ""
    buyer_pincode: str = ""
    place_of_supply: str = ""
    purpose: ChallanPurpose = ChallanPurpose.OTHERS
    items: list[LineItemSchema] = Field(min_length=1)

    def to_document(self) -> TaxableDocument:
        buyer_state = self.place_of_supply or self.buyer_state_code
        lines = compute_line_items(
            [ItemInput(**item.model_dump()) for item in self.items],
            self.seller_state_code,
            buyer_state,
        )
        common = dict(
            doc_date=self.doc_date,
            seller_state_code=self.seller_state_code,
            buyer_state_code=self.buyer_state_code,
            items=lines,
            buyer_gstin=self.buyer_gstin,
            buyer_name=self.buyer_name,
            buyer_address=self.buyer_address,
            buyer_place=self.buyer_place,
            buyer_pincode=self.buyer_pincode,
            number=self.number,
            place_of_supply=self.place_of_supply,
        )
        if self.kind == "challan":
            return ChallanDocument(purpose=self.purpose, **common)
        return InvoiceDocument(**common)


class TransportSchema(BaseModel):
    distance_km: int = Field(ge=0)
    mode: TransportMode | None = TransportMode.ROAD
    vehicle_no: str = ""
    vehicle_type: VehicleType = VehicleType.REGULAR
    transporter_id: str = ""
    transporter_name: str = ""
    trans_doc_no: str = ""
    trans_doc_date: date | None = None

    def to_details(self) -> TransportDetails:
        return TransportDetails(**self.model_dump())


class GenerateEWayBillRequest(BaseModel):
    document: DocumentSchema
    transport: TransportSchema


class VehicleUpdateBody(BaseModel):
    vehicle_no: str = Field(min_length=1)
    from_place: str = ""
    from_state: str = ""
    reason: VehicleUpdateReason | None = VehicleUpdateReason.FIRST_TIME
    remarks: str = ""
    mode: TransportMode = TransportMode.ROAD


class CancelBody(BaseModel):
    reason: CancelReason
    remarks: str = ""
