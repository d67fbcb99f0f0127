# gst_compliance/api/v1/deps.py
"""
FastAPI dependencies for the v1 API layer.

The e-way bill client and the record store are created once in the app
lifespan and shared by every request through ``app.state``. Document
numbers come from Postgres unless ``SEQUENCE_BACKEND=memory`` is set for
tests and sandbox runs.
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Request

from gst_compliance.config.settings import settings
from gst_compliance.core.db import get_db
from gst_compliance.core.errors import ConfigurationError
from gst_compliance.domain.services.document_sequencer import DocumentSequencer
from gst_compliance.infrastructure.db.record_store import RecordStore
from gst_compliance.infrastructure.db.repositories import (
    InvoiceRepository,
    RecordStoreCounter,
    SequenceRepository,
)
from gst_compliance.infrastructure.external.ewaybill_client import EWayBillClient


def get_ewaybill_client(request: Request) -> EWayBillClient:
    return request.app.state.ewaybill_client


def get_record_store(request: Request) -> RecordStore:
    return request.app.state.record_store


def get_invoice_repository(request: Request) -> InvoiceRepository:
    return InvoiceRepository(get_record_store(request))


async def get_document_sequencer(request: Request) -> AsyncIterator[DocumentSequencer]:
    """Sequencer over Postgres ``number_sequences`` or the process record store."""
    match settings.SEQUENCE_BACKEND:
        case "postgres":
            async for db in get_db():
                yield DocumentSequencer(SequenceRepository(db))
        case "memory":
            yield DocumentSequencer(RecordStoreCounter(get_record_store(request)))
        case other:
            raise ConfigurationError(f"unknown SEQUENCE_BACKEND: {other!r}")
