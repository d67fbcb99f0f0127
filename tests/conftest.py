"""Shared test fixtures for the GST compliance engine test suite."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from gst_compliance.domain.models.tax import ChallanDocument, ChallanPurpose, InvoiceDocument, ItemInput
from gst_compliance.domain.services.ewaybill_flow import SupplierDetails, TransportDetails
from gst_compliance.domain.services.gst_calculator import compute_line_items
from gst_compliance.infrastructure.db.record_store import InMemoryRecordStore

SUPPLIER_GSTIN = "27AAPFU0939F1ZV"
BUYER_GSTIN = "29AAECC1206D1ZM"


@pytest.fixture(scope="session")
def event_loop():
    """Use a single event loop for the entire test session."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture(scope="session")
def rsa_private_key():
    """Stand-in for the authority's key pair; tests hold the private half."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_public_pem(rsa_private_key) -> str:
    return rsa_private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def supplier() -> SupplierDetails:
    return SupplierDetails(
        gstin=SUPPLIER_GSTIN,
        state_code="27",
        name="Shree Jewellers",
        address="12 Zaveri Bazaar",
        place="Mumbai",
        pincode="400002",
    )


@pytest.fixture
def transport() -> TransportDetails:
    return TransportDetails(distance_km=980, vehicle_no="MH01 AB 1234")


@pytest.fixture
def sample_items() -> list[ItemInput]:
    return [
        ItemInput(
            quantity=Decimal("10.5"),
            unit_price=Decimal("5600"),
            gst_rate=Decimal("3"),
            hsn_code="7113",
            description="Gold Necklace - 22K",
            unit="GMS",
        ),
        ItemInput(
            quantity=Decimal("1"),
            unit_price=Decimal("2500"),
            gst_rate=Decimal("5"),
            hsn_code="9988",
            description="Making charges",
        ),
    ]


@pytest.fixture
def inter_state_invoice(sample_items) -> InvoiceDocument:
    return InvoiceDocument(
        doc_date=date(2025, 1, 15),
        seller_state_code="27",
        buyer_state_code="29",
        items=compute_line_items(sample_items, "27", "29"),
        buyer_gstin=BUYER_GSTIN,
        buyer_name="Karnataka Gold House",
        buyer_place="Bengaluru",
        buyer_pincode="560001",
        number="INV/2425/00042",
    )


@pytest.fixture
def job_work_challan(sample_items) -> ChallanDocument:
    return ChallanDocument(
        doc_date=date(2025, 1, 20),
        seller_state_code="27",
        buyer_state_code="27",
        items=compute_line_items(sample_items[:1], "27", "27"),
        buyer_name="Karigar Works",
        buyer_place="Thane",
        buyer_pincode="400601",
        number="DC/2501/00007",
        purpose=ChallanPurpose.JOB_WORK,
    )
