from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from invoice_backend.app.db.base import Base
from invoice_backend.app.db.session import SessionLocal, engine
from invoice_backend.app.main import app
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.models.invoice_item import InvoiceItem
from invoice_backend.app.models.partner import Partner

MANAGER = {"x-user-role": "Manager", "x-user-email": "manager@example.com"}
DRIVER = {"x-user-role": "Driver", "x-user-email": "driver@example.com"}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def create_draft(client: TestClient) -> str:
    db = SessionLocal()
    try:
        partner = Partner(name="Sample Logistics", billing_code="SMPL")
        db.add(partner)
        db.commit()
        partner_id = partner.id
    finally:
        db.close()
    resp = client.post(
        "/api/invoices",
        json={"partner_id": partner_id, "period_start": "2030-03-01", "period_end": "2030-03-31"},
        headers=MANAGER,
    )
    return resp.json()["id"]


def test_add_items_recomputes_totals():
    client = TestClient(app)
    invoice_id = create_draft(client)

    resp = client.post(
        f"/api/invoices/{invoice_id}/items",
        json={
            "items": [
                {"description": "Morning route", "quantity": 12, "unit": "stop", "unit_price": 250},
                {"description": "Overtime", "quantity": 2, "unit": "hour", "unit_price": 1800, "is_overtime": True},
            ]
        },
        headers=MANAGER,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert len(data["items"]) == 2
    assert Decimal(data["subtotal"]) == Decimal("6600")
    assert Decimal(data["tax"]) == Decimal("660")
    assert Decimal(data["total"]) == Decimal("7260")


def test_remove_item_recomputes_totals():
    client = TestClient(app)
    invoice_id = create_draft(client)
    resp = client.post(
        f"/api/invoices/{invoice_id}/items",
        json={
            "items": [
                {"description": "Keep", "quantity": 1, "unit": "other", "unit_price": 1000},
                {"description": "Drop", "quantity": 1, "unit": "other", "unit_price": 999},
            ]
        },
        headers=MANAGER,
    )
    drop_id = next(item["id"] for item in resp.json()["items"] if item["description"] == "Drop")

    resp = client.delete(f"/api/invoices/{invoice_id}/items/{drop_id}", headers=MANAGER)
    assert resp.status_code == 200
    data = resp.json()
    assert [item["description"] for item in data["items"]] == ["Keep"]
    assert Decimal(data["total"]) == Decimal("1100")

    db = SessionLocal()
    try:
        assert db.get(InvoiceItem, drop_id) is None
    finally:
        db.close()


def test_remove_unknown_item():
    client = TestClient(app)
    invoice_id = create_draft(client)
    resp = client.delete(f"/api/invoices/{invoice_id}/items/nope", headers=MANAGER)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Invoice item not found"


def test_items_cannot_change_after_submit():
    client = TestClient(app)
    invoice_id = create_draft(client)
    client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)

    resp = client.post(
        f"/api/invoices/{invoice_id}/items",
        json={"items": [{"description": "Late add", "quantity": 1, "unit": "km", "unit_price": 100}]},
        headers=MANAGER,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_STATUS"

    db = SessionLocal()
    try:
        invoice = db.get(Invoice, invoice_id)
        assert invoice.items == []
        assert Decimal(invoice.total) == Decimal("0")
    finally:
        db.close()


def test_add_items_requires_at_least_one():
    client = TestClient(app)
    invoice_id = create_draft(client)
    resp = client.post(f"/api/invoices/{invoice_id}/items", json={"items": []}, headers=MANAGER)
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_driver_cannot_edit_items():
    client = TestClient(app)
    invoice_id = create_draft(client)
    resp = client.post(
        f"/api/invoices/{invoice_id}/items",
        json={"items": [{"description": "x", "quantity": 1, "unit": "km", "unit_price": 1}]},
        headers=DRIVER,
    )
    assert resp.status_code == 403
