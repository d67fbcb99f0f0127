# gst_compliance/domain/models/ewaybill.py
"""
Wire-shaped e-way bill records (NIC API v1.03).

These mirror the external schema field-for-field and are kept apart from
the internal ``TaxableDocument`` types.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_TRANS_DISTANCE_KM = 4000


class SupplyType(str, Enum):
    OUTWARD = "O"
    INWARD = "I"


class SubSupplyType(str, Enum):
    SUPPLY = "1"
    IMPORT = "2"
    EXPORT = "3"
    JOB_WORK = "4"
    FOR_OWN_USE = "5"
    JOB_WORK_RETURNS = "6"
    SALES_RETURN = "7"
    OTHERS = "8"
    SKD_CKD = "9"
    LINE_SALES = "10"
    RECIPIENT_NOT_KNOWN = "11"
    EXHIBITION = "12"


class DocType(str, Enum):
    INVOICE = "INV"
    CHALLAN = "CHL"
    BILL_OF_ENTRY = "BOE"
    OTHERS = "OTH"


class TransactionType(IntEnum):
    REGULAR = 1
    BILL_TO_SHIP_TO = 2
    BILL_FROM_DISPATCH_FROM = 3
    COMBINATION = 4


class TransportMode(str, Enum):
    ROAD = "1"
    RAIL = "2"
    AIR = "3"
    SHIP = "4"


class VehicleType(str, Enum):
    REGULAR = "R"
    OVER_DIMENSIONAL = "O"


class CancelReason(IntEnum):
    DUPLICATE = 1
    ORDER_CANCELLED = 2
    DATA_ENTRY_MISTAKE = 3
    OTHERS = 4


class VehicleUpdateReason(IntEnum):
    BREAKDOWN = 1
    TRANSSHIPMENT = 2
    OTHERS = 3
    FIRST_TIME = 4


TRANSPORT_MODES = {
    TransportMode.ROAD: "Road",
    TransportMode.RAIL: "Rail",
    TransportMode.AIR: "Air",
    TransportMode.SHIP: "Ship",
}


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class EWayBillItem(_Wire):
    product_name: str = Field(..., alias="productName", max_length=100)
    product_desc: str = Field("", alias="productDesc", max_length=100)
    hsn_code: int = Field(..., alias="hsnCode")
    quantity: float
    qty_unit: str = Field("NOS", alias="qtyUnit")
    taxable_amount: float = Field(..., alias="taxableAmount")
    cgst_rate: float = Field(0, alias="cgstRate")
    sgst_rate: float = Field(0, alias="sgstRate")
    igst_rate: float = Field(0, alias="igstRate")
    cess_rate: float = Field(0, alias="cessRate")


class EWayBillRequest(_Wire):
    supply_type: SupplyType = Field(SupplyType.OUTWARD, alias="supplyType")
    sub_supply_type: SubSupplyType = Field(SubSupplyType.SUPPLY, alias="subSupplyType")
    sub_supply_desc: str = Field("", alias="subSupplyDesc")
    doc_type: DocType = Field(DocType.INVOICE, alias="docType")
    doc_no: str = Field(..., alias="docNo", max_length=16)
    doc_date: str = Field(..., alias="docDate")  # dd/mm/yyyy

    from_gstin: str = Field(..., alias="fromGstin")
    from_trd_name: str = Field("", alias="fromTrdName")
    from_addr1: str = Field("", alias="fromAddr1")
    from_addr2: str = Field("", alias="fromAddr2")
    from_place: str = Field("", alias="fromPlace")
    from_pincode: int = Field(..., alias="fromPincode")
    from_state_code: int = Field(..., alias="fromStateCode")
    act_from_state_code: int = Field(..., alias="actFromStateCode")

    to_gstin: str = Field(..., alias="toGstin")
    to_trd_name: str = Field("", alias="toTrdName")
    to_addr1: str = Field("", alias="toAddr1")
    to_addr2: str = Field("", alias="toAddr2")
    to_place: str = Field("", alias="toPlace")
    to_pincode: int = Field(..., alias="toPincode")
    to_state_code: int = Field(..., alias="toStateCode")
    act_to_state_code: int = Field(..., alias="actToStateCode")

    transaction_type: TransactionType = Field(TransactionType.REGULAR, alias="transactionType")
    trans_distance: int = Field(..., alias="transDistance")
    trans_mode: TransportMode | None = Field(None, alias="transMode")
    vehicle_type: VehicleType = Field(VehicleType.REGULAR, alias="vehicleType")
    vehicle_no: str = Field("", alias="vehicleNo")
    transporter_id: str = Field("", alias="transporterId")
    transporter_name: str = Field("", alias="transporterName")
    trans_doc_no: str = Field("", alias="transDocNo")
    trans_doc_date: str = Field("", alias="transDocDate")

    total_value: float = Field(..., alias="totalValue")
    cgst_value: float = Field(0, alias="cgstValue")
    sgst_value: float = Field(0, alias="sgstValue")
    igst_value: float = Field(0, alias="igstValue")
    cess_value: float = Field(0, alias="cessValue")
    tot_inv_value: float = Field(..., alias="totInvValue")

    item_list: list[EWayBillItem] = Field(..., alias="itemList")

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("transMode") is None:
            data["transMode"] = ""
        return data


class VehicleUpdateRequest(_Wire):
    ewb_no: int = Field(..., alias="ewbNo")
    vehicle_no: str = Field(..., alias="vehicleNo")
    from_place: str = Field("", alias="fromPlace")
    from_state: int = Field(0, alias="fromState")
    reason_code: VehicleUpdateReason | None = Field(None, alias="reasonCode")
    reason_rem: str = Field("", alias="reasonRem")
    trans_doc_no: str = Field("", alias="transDocNo")
    trans_doc_date: str = Field("", alias="transDocDate")
    trans_mode: TransportMode = Field(TransportMode.ROAD, alias="transMode")

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("reasonCode") is None:
            data["reasonCode"] = ""
        return data


class CancelRequest(_Wire):
    ewb_no: int = Field(..., alias="ewbNo")
    cancel_rsn_code: CancelReason = Field(..., alias="cancelRsnCode")
    cancel_rmrk: str = Field("", alias="cancelRmrk")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class EWayBillResponse(_Wire):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    ewb_no: str = Field(..., alias="ewayBillNo")
    ewb_date: str = Field("", alias="ewayBillDate")
    valid_upto: str | None = Field(None, alias="validUpto")
    alert: str | None = None


class VehicleUpdateResponse(_Wire):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    vehicle_upd_date: str = Field("", alias="vehUpdDate")
    valid_upto: str | None = Field(None, alias="validUpto")


class CancelResponse(_Wire):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    ewb_no: str = Field(..., alias="ewayBillNo")
    cancel_date: str = Field("", alias="cancelDate")


class EWayBillDetails(_Wire):
    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    ewb_no: str = Field(..., alias="ewbNo")
    ewb_date: str = Field("", alias="ewayBillDate")
    status: str = ""
    doc_no: str = Field("", alias="docNo")
    doc_date: str = Field("", alias="docDate")
    from_gstin: str = Field("", alias="fromGstin")
    to_gstin: str = Field("", alias="toGstin")
    tot_inv_value: float = Field(0, alias="totInvValue")
    valid_upto: str | None = Field(None, alias="validUpto")
    item_list: list[dict[str, Any]] = Field(default_factory=list, alias="itemList")
