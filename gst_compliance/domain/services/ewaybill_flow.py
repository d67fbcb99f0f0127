# gst_compliance/domain/services/ewaybill_flow.py
"""
e-WayBill business logic.

Maps internal ``TaxableDocument`` values onto the NIC wire request, checks
the request locally before anything is sent, and wraps the low-level
``EWayBillClient`` with result-dict helpers for generation, tracking,
vehicle updates and cancellation.

Every helper returns ``{"success": True, ...}`` or
``{"success": False, "error": "...", "error_kind": "..."}`` where
``error_kind`` is one of ``validation``, ``configuration``, ``auth``,
``rejected``, ``crypto``, ``unavailable``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from gst_compliance.config.settings import settings
from gst_compliance.core.errors import GstComplianceError, ValidationError
from gst_compliance.domain.models.ewaybill import (
    MAX_TRANS_DISTANCE_KM,
    DocType,
    EWayBillItem,
    EWayBillRequest,
    SubSupplyType,
    SupplyType,
    TransportMode,
    VehicleType,
    VehicleUpdateReason,
    VehicleUpdateRequest,
)
from gst_compliance.domain.models.tax import (
    ChallanDocument,
    ChallanPurpose,
    InvoiceDocument,
    TaxableDocument,
)
from gst_compliance.domain.services.gst_calculator import HSN_CODES, to_decimal
from gst_compliance.domain.services.gstin_pan_validation import (
    UNREGISTERED_GSTIN,
    is_valid_ewaybill_gstin,
    is_valid_gstin,
)

if TYPE_CHECKING:
    from gst_compliance.infrastructure.external.ewaybill_client import EWayBillClient

logger = logging.getLogger("ewaybill_flow")

_DOC_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_PINCODE_RE = re.compile(r"^[1-9][0-9]{5}$")

CHALLAN_SUB_SUPPLY = {
    ChallanPurpose.JOB_WORK: SubSupplyType.JOB_WORK,
    ChallanPurpose.EXHIBITION: SubSupplyType.EXHIBITION,
    ChallanPurpose.SALES_RETURN: SubSupplyType.SALES_RETURN,
    ChallanPurpose.APPROVAL: SubSupplyType.OTHERS,
    ChallanPurpose.OTHERS: SubSupplyType.OTHERS,
}


def is_ewaybill_required(document_value, threshold=None) -> bool:
    """An e-way bill is needed only when the consignment value exceeds ₹50,000."""
    limit = to_decimal(threshold if threshold is not None else settings.EWAYBILL_THRESHOLD)
    return to_decimal(document_value, "document_value") > limit


@dataclass(frozen=True)
class SupplierDetails:
    gstin: str
    state_code: str
    name: str = ""
    address: str = ""
    place: str = ""
    pincode: str = ""

    @classmethod
    def from_settings(cls) -> "SupplierDetails":
        return cls(
            gstin=settings.STORE_GSTIN,
            state_code=settings.STORE_STATE_CODE or settings.STORE_GSTIN[:2],
            name=settings.STORE_NAME,
            address=settings.STORE_ADDRESS,
            place=settings.STORE_PLACE,
            pincode=settings.STORE_PINCODE,
        )


@dataclass(frozen=True)
class TransportDetails:
    distance_km: int
    mode: TransportMode | None = TransportMode.ROAD
    vehicle_no: str = ""
    vehicle_type: VehicleType = VehicleType.REGULAR
    transporter_id: str = ""
    transporter_name: str = ""
    trans_doc_no: str = ""
    trans_doc_date: date | None = None


def _wire_date(value: date | None) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def _state_int(code: str, field: str) -> int:
    text = (code or "").strip()
    if not text.isdigit():
        raise ValidationError(f"{field} must be a numeric state code, got {code!r}", field=field)
    return int(text)


def _pincode_int(pincode: str, field: str) -> int:
    text = (pincode or "").strip()
    if not _PINCODE_RE.match(text):
        raise ValidationError(f"{field} must be a 6-digit PIN code, got {pincode!r}", field=field)
    return int(text)


def _hsn_int(hsn: str) -> int:
    text = (hsn or HSN_CODES["DEFAULT"]).strip()
    if not text.isdigit():
        raise ValidationError(f"HSN code must be numeric, got {hsn!r}", field="hsn_code")
    return int(text)


def _money(value: Decimal) -> float:
    return float(value)


def _document_codes(document: TaxableDocument) -> tuple[DocType, SubSupplyType, str]:
    match document:
        case InvoiceDocument():
            return DocType.INVOICE, SubSupplyType.SUPPLY, ""
        case ChallanDocument(purpose=purpose):
            sub_supply = CHALLAN_SUB_SUPPLY[ChallanPurpose(purpose)]
            desc = ChallanPurpose(purpose).value.replace("_", " ").title()
            return DocType.CHALLAN, sub_supply, desc if sub_supply is SubSupplyType.OTHERS else ""
        case _:
            raise TypeError(f"not a taxable document: {type(document).__name__}")


def build_ewaybill_request(
    document: TaxableDocument,
    supplier: SupplierDetails,
    transport: TransportDetails,
) -> EWayBillRequest:
    """Map a numbered invoice or challan onto the NIC generation request."""
    if document.is_draft:
        raise ValidationError("document must be numbered before an e-way bill is raised", field="number")
    if not document.items:
        raise ValidationError("document has no line items", field="items")

    doc_type, sub_supply, sub_supply_desc = _document_codes(document)
    to_gstin = (document.buyer_gstin or "").strip().upper() or UNREGISTERED_GSTIN
    to_state = document.place_of_supply or document.buyer_state_code or supplier.state_code
    totals = document.totals

    try:
        items = [
            EWayBillItem(
                product_name=(line.description or "Item")[:100],
                product_desc=(line.description or "")[:100],
                hsn_code=_hsn_int(line.hsn_code),
                quantity=float(line.quantity),
                qty_unit=line.unit or "NOS",
                taxable_amount=_money(line.taxable_amount),
                cgst_rate=float(line.cgst_rate),
                sgst_rate=float(line.sgst_rate),
                igst_rate=float(line.igst_rate),
                cess_rate=float(line.cess_rate),
            )
            for line in document.items
        ]
        return EWayBillRequest(
            supply_type=SupplyType.OUTWARD,
            sub_supply_type=sub_supply,
            sub_supply_desc=sub_supply_desc,
            doc_type=doc_type,
            doc_no=document.number,
            doc_date=_wire_date(document.doc_date),
            from_gstin=supplier.gstin,
            from_trd_name=supplier.name,
            from_addr1=supplier.address,
            from_place=supplier.place,
            from_pincode=_pincode_int(supplier.pincode, "from_pincode"),
            from_state_code=_state_int(supplier.state_code, "from_state_code"),
            act_from_state_code=_state_int(supplier.state_code, "from_state_code"),
            to_gstin=to_gstin,
            to_trd_name=document.buyer_name,
            to_addr1=document.buyer_address,
            to_place=document.buyer_place,
            to_pincode=_pincode_int(document.buyer_pincode, "to_pincode"),
            to_state_code=_state_int(to_state, "to_state_code"),
            act_to_state_code=_state_int(to_state, "to_state_code"),
            trans_distance=transport.distance_km,
            trans_mode=transport.mode,
            vehicle_type=transport.vehicle_type,
            vehicle_no=transport.vehicle_no.replace(" ", "").upper(),
            transporter_id=transport.transporter_id,
            transporter_name=transport.transporter_name,
            trans_doc_no=transport.trans_doc_no,
            trans_doc_date=_wire_date(transport.trans_doc_date),
            total_value=_money(totals.taxable_amount),
            cgst_value=_money(totals.cgst_amount),
            sgst_value=_money(totals.sgst_amount),
            igst_value=_money(totals.igst_amount),
            cess_value=_money(totals.cess_amount),
            tot_inv_value=_money(totals.grand_total),
            item_list=items,
        )
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"{field}: {first.get('msg')}", field=field) from exc


def validate_ewaybill_request(request: EWayBillRequest) -> None:
    """Local checks run before any network call.

    The authority rejects an over-long distance with an opaque error code,
    so the 4000 km cap is enforced here.
    """
    if request.trans_distance < 0:
        raise ValidationError("transport distance must not be negative", field="trans_distance")
    if request.trans_distance > MAX_TRANS_DISTANCE_KM:
        raise ValidationError(
            f"transport distance {request.trans_distance} km exceeds the "
            f"{MAX_TRANS_DISTANCE_KM} km limit",
            field="trans_distance",
        )
    if not is_valid_gstin(request.from_gstin):
        raise ValidationError(f"invalid supplier GSTIN: {request.from_gstin!r}", field="from_gstin")
    if not is_valid_ewaybill_gstin(request.to_gstin):
        raise ValidationError(f"invalid recipient GSTIN: {request.to_gstin!r}", field="to_gstin")
    if not _DOC_DATE_RE.match(request.doc_date):
        raise ValidationError("document date must be dd/mm/yyyy", field="doc_date")
    if not request.item_list:
        raise ValidationError("at least one item is required", field="item_list")
    if request.sub_supply_type == SubSupplyType.OTHERS.value and not request.sub_supply_desc:
        raise ValidationError("sub-supply description is required for 'Others'", field="sub_supply_desc")


# ---------- Result-dict wrappers ----------

def _failure(exc: GstComplianceError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "error_kind": exc.kind}


def _not_configured() -> dict[str, Any]:
    return {
        "success": False,
        "error": "e-WayBill service not configured",
        "error_kind": "configuration",
    }


async def generate_ewb(
    client: "EWayBillClient",
    document: TaxableDocument,
    transport: TransportDetails,
    supplier: SupplierDetails | None = None,
) -> dict[str, Any]:
    """Generate an e-WayBill for one invoice or challan.

    Returns
    -------
    dict
        ``{"success": True, "ewb_no": "...", "ewb_date": "...", "valid_until": "..."}``
        or ``{"success": False, "error": "...", "error_kind": "..."}``
    """
    try:
        request = build_ewaybill_request(document, supplier or SupplierDetails.from_settings(), transport)
        validate_ewaybill_request(request)
        if not client.config.is_configured():
            return _not_configured()
        resp = await client.generate_ewaybill(request)
        return {
            "success": True,
            "ewb_no": resp.ewb_no,
            "ewb_date": resp.ewb_date,
            "valid_until": resp.valid_upto or "N/A",
            "alert": resp.alert,
        }
    except GstComplianceError as e:
        logger.error("e-WayBill generation error (%s): %s", e.kind, e)
        return _failure(e)


async def track_ewb(client: "EWayBillClient", ewb_no: str) -> dict[str, Any]:
    """Fetch the current state of an e-WayBill."""
    if not client.config.is_configured():
        return _not_configured()

    try:
        details = await client.get_ewaybill(ewb_no)
        return {
            "success": True,
            "ewb_no": details.ewb_no,
            "status": details.status or "Unknown",
            "doc_no": details.doc_no,
            "generated_date": details.ewb_date or "N/A",
            "valid_until": details.valid_upto or "N/A",
        }
    except GstComplianceError as e:
        logger.error("e-WayBill tracking error (%s): %s", e.kind, e)
        return _failure(e)


async def update_vehicle(
    client: "EWayBillClient",
    ewb_no: str,
    vehicle_no: str,
    *,
    from_place: str = "",
    from_state: str = "",
    reason: VehicleUpdateReason | None = VehicleUpdateReason.FIRST_TIME,
    remarks: str = "",
    mode: TransportMode = TransportMode.ROAD,
) -> dict[str, Any]:
    """Update the vehicle number (Part-B) on an e-WayBill."""
    if not client.config.is_configured():
        return _not_configured()

    try:
        request = VehicleUpdateRequest(
            ewb_no=int(ewb_no) if str(ewb_no).isdigit() else 0,
            vehicle_no=vehicle_no.replace(" ", "").upper(),
            from_place=from_place,
            from_state=_state_int(from_state, "from_state") if from_state else 0,
            reason_code=reason,
            reason_rem=remarks or (reason.name.replace("_", " ").title() if reason else ""),
            trans_mode=mode,
        )
        resp = await client.update_vehicle(request)
        return {
            "success": True,
            "message": f"Vehicle updated to {request.vehicle_no} for EWB {ewb_no}",
            "valid_until": resp.valid_upto or "N/A",
        }
    except GstComplianceError as e:
        logger.error("e-WayBill vehicle update error (%s): %s", e.kind, e)
        return _failure(e)


async def cancel_ewb(
    client: "EWayBillClient",
    ewb_no: str,
    reason: int,
    remarks: str = "",
) -> dict[str, Any]:
    """Cancel an e-WayBill. Rejections past the grace period come back as ``rejected``."""
    if not client.config.is_configured():
        return _not_configured()

    try:
        resp = await client.cancel_ewaybill(ewb_no, reason, remarks)
        return {"success": True, "ewb_no": resp.ewb_no, "cancel_date": resp.cancel_date}
    except GstComplianceError as e:
        logger.error("e-WayBill cancellation error (%s): %s", e.kind, e)
        return _failure(e)
