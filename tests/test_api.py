# tests/test_api.py
"""Tests for the v1 HTTP API (envelope shape, status mapping, wiring)."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pydantic
import pytest
from fastapi.testclient import TestClient

from gst_compliance.api.v1 import deps
from gst_compliance.api.v1.deps import get_ewaybill_client, get_invoice_repository
from gst_compliance.config.settings import Settings, settings
from gst_compliance.domain.models.ewaybill import EWayBillResponse
from gst_compliance.infrastructure.db.repositories import InvoiceRepository
from gst_compliance.infrastructure.external.ewaybill_client import EWayBillUnavailableError
from gst_compliance.main import app

GSTIN = "27AAPFU0939F1ZV"


@pytest.fixture
def api():
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def store_settings(monkeypatch):
    monkeypatch.setattr(settings, "STORE_GSTIN", GSTIN)
    monkeypatch.setattr(settings, "STORE_STATE_CODE", "27")
    monkeypatch.setattr(settings, "STORE_NAME", "Shree Jewellers")
    monkeypatch.setattr(settings, "STORE_PLACE", "Mumbai")
    monkeypatch.setattr(settings, "STORE_PINCODE", "400002")


def _generate_body(distance_km: int = 980) -> dict:
    return {
        "document": {
            "kind": "invoice",
            "number": "INV/2425/00042",
            "doc_date": "2025-01-15",
            "seller_state_code": "27",
            "buyer_state_code": "29",
            "buyer_gstin": "29AAECC1206D1ZM",
            "buyer_name": "Karnataka Gold House",
            "buyer_place": "Bengaluru",
            "buyer_pincode": "560001",
            "items": [
                {
                    "quantity": "10.5",
                    "unit_price": "5600",
                    "gst_rate": "3",
                    "hsn_code": "7113",
                    "description": "Gold Necklace - 22K",
                    "unit": "GMS",
                }
            ],
        },
        "transport": {"distance_km": distance_km, "vehicle_no": "MH01AB1234"},
    }


def _mock_client() -> MagicMock:
    client = MagicMock()
    client.config.is_configured.return_value = True
    client.generate_ewaybill = AsyncMock()
    client.cancel_ewaybill = AsyncMock()
    return client


# ---------- health ----------

def test_health(api):
    r = api.get("/api/v1/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["data"]["version"] == "0.1.0"
    assert body["data"]["ewaybill_session"] == "unauthenticated"


# ---------- gst ----------

def test_compute_tax_inter_state(api):
    r = api.post(
        "/api/v1/gst/tax",
        json={"taxable_amount": "10000", "seller_state_code": "27", "buyer_state_code": "29", "gst_rate": "3"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["igst_amount"] == "300.00"
    assert data["cgst_amount"] == "0.00"
    assert data["grand_total"] == "10300.00"
    assert data["is_inter_state"] is True
    assert data["amount_in_words"] == "Ten Thousand Three Hundred Rupees Only"


def test_compute_tax_rejects_bad_rate(api):
    r = api.post("/api/v1/gst/tax", json={"taxable_amount": "100", "seller_state_code": "27", "gst_rate": "150"})
    assert r.status_code == 422


def test_amount_in_words(api):
    r = api.get("/api/v1/gst/amount-in-words", params={"amount": "1234.50"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["words"] == "One Thousand Two Hundred Thirty Four Rupees and Fifty Paise Only"
    assert data["formatted"] == "₹1,234.50"


def test_gstr1_report(api, event_loop, store):
    event_loop.run_until_complete(
        store.create(
            "invoices",
            {
                "id": "inv-1",
                "invoice_number": "INV/2425/00001",
                "invoice_date": date(2025, 1, 5),
                "invoice_type": "regular",
                "buyer_gstin": "29AAECC1206D1ZM",
                "grand_total": Decimal("10300"),
            },
        )
    )
    event_loop.run_until_complete(
        store.create(
            "invoice_items",
            {
                "invoice": "inv-1",
                "hsn_code": "7113",
                "quantity": Decimal("2"),
                "unit": "GMS",
                "taxable_amount": Decimal("10000"),
                "igst_amount": Decimal("300"),
                "gst_rate": Decimal("3"),
            },
        )
    )
    app.dependency_overrides[get_invoice_repository] = lambda: InvoiceRepository(store)

    r = api.get("/api/v1/gst/gstr1", params={"gstin": GSTIN, "start": "2025-01-01", "end": "2025-01-31"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["payload"]["fp"] == "012025"
    assert data["payload"]["b2b"][0]["ctin"] == "29AAECC1206D1ZM"
    assert data["payload"]["b2b"][0]["inv"][0]["val"] == 10300.0
    assert data["omissions"] == []
    assert data["summary"]["b2b_invoices"] == 1
    assert "GSTR-1 preview for period 2025-01" in data["preview"]


def test_gstr1_invalid_gstin(api):
    r = api.get("/api/v1/gst/gstr1", params={"gstin": "27AAPFU0939F1Z!", "start": "2025-01-01", "end": "2025-01-31"})
    assert r.status_code == 422
    body = r.json()
    assert body["status"] == "error"
    assert body["errors"] == [{"kind": "validation", "field": "gstin"}]


# ---------- e-way bill ----------

def test_ewaybill_required(api):
    assert api.get("/api/v1/ewaybill/required", params={"value": "50000"}).json()["data"]["required"] is False
    assert api.get("/api/v1/ewaybill/required", params={"value": "75000"}).json()["data"]["required"] is True


def test_generate_over_distance_is_validation_error(api, store_settings):
    r = api.post("/api/v1/ewaybill/generate", json=_generate_body(distance_km=4500))
    assert r.status_code == 422
    body = r.json()
    assert body["errors"] == [{"kind": "validation"}]
    assert "4000" in body["message"]


def test_generate_unconfigured(api, store_settings):
    r = api.post("/api/v1/ewaybill/generate", json=_generate_body())
    assert r.status_code == 503
    assert r.json()["errors"] == [{"kind": "configuration"}]


def test_generate_success(api, store_settings):
    client = _mock_client()
    client.generate_ewaybill.return_value = EWayBillResponse(
        ewb_no="331001234567", ewb_date="15/01/2025 10:30:00 AM", valid_upto="21/01/2025 11:59:00 PM",
    )
    app.dependency_overrides[get_ewaybill_client] = lambda: client

    r = api.post("/api/v1/ewaybill/generate", json=_generate_body())
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["ewb_no"] == "331001234567"
    sent = client.generate_ewaybill.call_args.args[0]
    assert sent.from_gstin == GSTIN
    assert sent.igst_value == 1764.0


def test_cancel_authority_unavailable(api):
    client = _mock_client()
    client.cancel_ewaybill.side_effect = EWayBillUnavailableError("e-WayBill API timeout after 3 attempt(s)")
    app.dependency_overrides[get_ewaybill_client] = lambda: client

    r = api.post("/api/v1/ewaybill/331001234567/cancel", json={"reason": 2, "remarks": "Order cancelled"})
    assert r.status_code == 503
    assert r.json()["errors"] == [{"kind": "unavailable"}]


def test_cancel_rejects_unknown_reason(api):
    r = api.post("/api/v1/ewaybill/331001234567/cancel", json={"reason": 9})
    assert r.status_code == 422


# ---------- documents ----------

@pytest.fixture
def memory_sequences(monkeypatch):
    monkeypatch.setattr(settings, "SEQUENCE_BACKEND", "memory")


def test_document_numbers_are_sequential(api, memory_sequences):
    first = api.post("/api/v1/documents/dc/number", params={"on_date": "2025-01-20"}).json()["data"]
    second = api.post("/api/v1/documents/delivery_challan/number", params={"on_date": "2025-01-21"}).json()["data"]
    assert first == {"family": "dc", "number": "DC/2501/00001", "fallback": False}
    assert second["number"] == "DC/2501/00002"


def test_invoice_number_uses_financial_year(api, memory_sequences):
    r = api.post("/api/v1/documents/invoice/number", params={"on_date": "2026-03-31"})
    assert r.json()["data"]["number"] == "INV/2526/00001"


def test_unknown_document_family(api, memory_sequences):
    r = api.post("/api/v1/documents/receipt/number")
    assert r.status_code == 422
    assert r.json()["errors"] == [{"kind": "validation", "field": "family"}]


def test_postgres_is_the_default_sequence_backend(monkeypatch):
    monkeypatch.delenv("SEQUENCE_BACKEND", raising=False)
    monkeypatch.delenv("sequence_backend", raising=False)
    assert Settings(_env_file=None).SEQUENCE_BACKEND == "postgres"


def test_unknown_sequence_backend_rejected_at_startup():
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None, SEQUENCE_BACKEND="sqlite")


def test_document_numbers_come_from_postgres_counter(api, monkeypatch):
    db = AsyncMock()
    result = MagicMock()
    result.scalar_one.return_value = 7
    db.execute.return_value = result

    async def fake_db():
        yield db

    monkeypatch.setattr(settings, "SEQUENCE_BACKEND", "postgres")
    monkeypatch.setattr(deps, "get_db", fake_db)

    r = api.post("/api/v1/documents/dc/number", params={"on_date": "2025-01-20"})
    assert r.status_code == 200
    assert r.json()["data"]["number"] == "DC/2501/00007"
    db.commit.assert_awaited_once()


def test_unrecognised_sequence_backend_is_configuration_error(api, monkeypatch):
    monkeypatch.setattr(settings, "SEQUENCE_BACKEND", "sqlite")
    r = api.post("/api/v1/documents/dc/number")
    assert r.status_code == 503
    assert r.json()["errors"] == [{"kind": "configuration"}]
