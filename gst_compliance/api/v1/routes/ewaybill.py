# gst_compliance/api/v1/routes/ewaybill.py
"""
e-WayBill endpoints.

Service results carry an ``error_kind``; it is mapped to the HTTP status so
clients can tell bad input from an authority rejection or an outage.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from gst_compliance.api.v1.deps import get_ewaybill_client
from gst_compliance.api.v1.envelope import error, ok
from gst_compliance.api.v1.schemas.ewaybill import (
    CancelBody,
    GenerateEWayBillRequest,
    VehicleUpdateBody,
)
from gst_compliance.domain.services import ewaybill_flow
from gst_compliance.infrastructure.external.ewaybill_client import EWayBillClient

logger = logging.getLogger("api.v1.ewaybill")

router = APIRouter(prefix="/ewaybill", tags=["e-WayBill"])

ERROR_STATUS = {
    "validation": 422,
    "rejected": 422,
    "configuration": 503,
    "unavailable": 503,
    "auth": 502,
    "crypto": 502,
}


def _respond(result: dict):
    if result.get("success"):
        data = {k: v for k, v in result.items() if k != "success"}
        return ok(data)
    kind = result.get("error_kind", "error")
    return JSONResponse(
        status_code=ERROR_STATUS.get(kind, 500),
        content=error(result.get("error", "e-WayBill request failed"), kind),
    )


@router.get("/required", response_model=dict)
async def ewaybill_required(value: Decimal = Query(..., ge=0)):
    """Whether a consignment of this value needs an e-way bill."""
    return ok({"value": str(value), "required": ewaybill_flow.is_ewaybill_required(value)})


@router.post("/generate", response_model=dict)
async def generate(
    body: GenerateEWayBillRequest,
    client: EWayBillClient = Depends(get_ewaybill_client),
):
    document = body.document.to_document()
    result = await ewaybill_flow.generate_ewb(client, document, body.transport.to_details())
    return _respond(result)


@router.post("/{ewb_no}/vehicle", response_model=dict)
async def update_vehicle(
    ewb_no: str,
    body: VehicleUpdateBody,
    client: EWayBillClient = Depends(get_ewaybill_client),
):
    result = await ewaybill_flow.update_vehicle(
        client,
        ewb_no,
        body.vehicle_no,
        from_place=body.from_place,
        from_state=body.from_state,
        reason=body.reason,
        remarks=body.remarks,
        mode=body.mode,
    )
    return _respond(result)


@router.post("/{ewb_no}/cancel", response_model=dict)
async def cancel(
    ewb_no: str,
    body: CancelBody,
    client: EWayBillClient = Depends(get_ewaybill_client),
):
    result = await ewaybill_flow.cancel_ewb(client, ewb_no, body.reason, body.remarks)
    return _respond(result)


@router.get("/{ewb_no}", response_model=dict)
async def track(
    ewb_no: str,
    client: EWayBillClient = Depends(get_ewaybill_client),
):
    result = await ewaybill_flow.track_ewb(client, ewb_no)
    return _respond(result)
