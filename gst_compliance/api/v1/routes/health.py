# gst_compliance/api/v1/routes/health.py
from fastapi import APIRouter, Depends

from gst_compliance import __version__
from gst_compliance.api.v1.deps import get_ewaybill_client
from gst_compliance.api.v1.envelope import ok
from gst_compliance.config.settings import settings
from gst_compliance.infrastructure.external.ewaybill_client import EWayBillClient

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(client: EWayBillClient = Depends(get_ewaybill_client)):
    return ok(
        {
            "app": settings.APP_NAME,
            "version": __version__,
            "environment": settings.ENVIRONMENT,
            "ewaybill_configured": client.config.is_configured(),
            "ewaybill_session": client.state.value,
        },
        message="GST compliance engine running",
    )
