# gst_compliance/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gst_compliance.api.v1 import v1_router
from gst_compliance.api.v1.envelope import error
from gst_compliance.config.settings import settings
from gst_compliance.core.db import engine
from gst_compliance.core.errors import ConfigurationError, GstComplianceError, ValidationError
from gst_compliance.core.logging_config import setup_logging
from gst_compliance.infrastructure.db.record_store import InMemoryRecordStore
from gst_compliance.infrastructure.external.ewaybill_client import EWayBillClient

setup_logging(settings.LOG_LEVEL)

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One e-way bill client (and so one session) per process.
    app.state.ewaybill_client = EWayBillClient()
    app.state.record_store = InMemoryRecordStore()
    if settings.SEQUENCE_BACKEND == "memory":
        logger.warning("SEQUENCE_BACKEND=memory: document counters restart from 1 with this process")
    else:
        logger.info("Document counters in Postgres number_sequences")
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content=error(exc.reason, exc.kind, exc.field),
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=503, content=error(str(exc), exc.kind))

    @app.exception_handler(GstComplianceError)
    async def compliance_error(request: Request, exc: GstComplianceError):
        return JSONResponse(status_code=500, content=error(str(exc), exc.kind))

    app.include_router(v1_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("gst_compliance.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
