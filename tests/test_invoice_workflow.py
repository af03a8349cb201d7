import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from invoice_backend.app.core.errors import InvalidStatus
from invoice_backend.app.core.identity import Identity
from invoice_backend.app.db.base import Base
from invoice_backend.app.db.session import SessionLocal, engine
from invoice_backend.app.main import app
from invoice_backend.app.models.approval import ApprovalEvent
from invoice_backend.app.models.invoice import Invoice
from invoice_backend.app.models.partner import Partner
from invoice_backend.app.services.audit import AuditRecorder
from invoice_backend.app.services.workflow import (
    TRANSITIONS,
    ApprovalWorkflow,
    WorkflowAction,
    resolve_transition,
)

MANAGER = {"x-user-role": "Manager", "x-user-email": "manager@example.com"}
ADMIN = {"x-user-role": "Admin", "x-user-email": "admin@example.com"}
DRIVER = {"x-user-role": "Driver", "x-user-email": "driver@example.com"}

ALL_STATUSES = ["Draft", "Submitted", "Approved", "Invoiced", "Rejected"]
VALID_PAIRS = {
    ("Draft", "submit"),
    ("Submitted", "approve"),
    ("Approved", "approve"),
    ("Submitted", "reject"),
    ("Approved", "reject"),
    ("Rejected", "reopen"),
}
INVALID_PAIRS = [
    (status, action)
    for status in ALL_STATUSES
    for action in ("submit", "approve", "reject", "reopen")
    if (status, action) not in VALID_PAIRS
]


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def create_draft(client: TestClient) -> str:
    db = SessionLocal()
    try:
        partner = Partner(name="Harbor Transport", billing_code="HRBR")
        db.add(partner)
        db.commit()
        partner_id = partner.id
    finally:
        db.close()

    resp = client.post(
        "/api/invoices",
        json={
            "partner_id": partner_id,
            "period_start": "2030-02-01",
            "period_end": "2030-02-28",
            "items": [{"description": "Linehaul", "quantity": 1, "unit": "other", "unit_price": 10000}],
        },
        headers=MANAGER,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def force_status(invoice_id: str, status: str) -> None:
    db = SessionLocal()
    try:
        invoice = db.get(Invoice, invoice_id)
        invoice.status = status
        db.commit()
    finally:
        db.close()


def load_events(invoice_id: str):
    db = SessionLocal()
    try:
        return (
            db.query(ApprovalEvent)
            .filter(ApprovalEvent.invoice_id == invoice_id)
            .order_by(ApprovalEvent.approved_at)
            .all()
        )
    finally:
        db.close()


def transition_body(action: str):
    if action == "reject":
        return {"comment": "Wrong totals"}
    return None


def test_transition_table_matches_lifecycle():
    assert {(status.value, action.value) for status, action in TRANSITIONS} == VALID_PAIRS


def test_resolve_transition_rejects_unknown_status():
    with pytest.raises(InvalidStatus) as excinfo:
        resolve_transition("Archived", WorkflowAction.SUBMIT)
    assert excinfo.value.current_status == "Archived"


def test_full_lifecycle_to_invoiced():
    client = TestClient(app)
    invoice_id = create_draft(client)

    resp = client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Invoice submitted for approval", "status": "Submitted"}

    resp = client.post(f"/api/invoices/{invoice_id}/approve", json={"comment": "ok"}, headers=MANAGER)
    assert resp.json()["status"] == "Approved"

    resp = client.post(
        f"/api/invoices/{invoice_id}/approve", json={"approver_role": "accounting"}, headers=ADMIN
    )
    assert resp.json()["status"] == "Invoiced"

    db = SessionLocal()
    try:
        invoice = db.get(Invoice, invoice_id)
        assert invoice.approved_by == MANAGER["x-user-email"]
        assert invoice.approved_at is not None
        assert invoice.invoiced_at is not None
    finally:
        db.close()

    events = load_events(invoice_id)
    assert [(e.previous_status, e.new_status) for e in events] == [
        ("Draft", "Submitted"),
        ("Submitted", "Approved"),
        ("Approved", "Invoiced"),
    ]
    assert [e.action for e in events] == ["approve", "approve", "approve"]
    assert [e.approver_role for e in events] == ["field", "manager", "accounting"]
    assert events[1].comment == "ok"
    assert events[2].approver_email == ADMIN["x-user-email"]

    detail = client.get(f"/api/invoices/{invoice_id}", headers=MANAGER).json()
    assert len(detail["approvals"]) == 3


def test_reject_then_reopen_returns_to_draft():
    client = TestClient(app)
    invoice_id = create_draft(client)
    client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)

    resp = client.post(f"/api/invoices/{invoice_id}/reject", json={"comment": "Missing stops"}, headers=MANAGER)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Invoice rejected successfully", "status": "Rejected"}

    resp = client.post(f"/api/invoices/{invoice_id}/reopen", headers=MANAGER)
    assert resp.json()["status"] == "Draft"

    events = load_events(invoice_id)
    assert [e.action for e in events] == ["approve", "reject", "request_change"]
    assert events[1].comment == "Missing stops"
    assert events[2].comment == "Reopened for modification"
    assert events[2].approver_role == "field"

    # Reopened drafts are editable again
    resp = client.patch(f"/api/invoices/{invoice_id}", json={"memo": "fixed"}, headers=MANAGER)
    assert resp.status_code == 200


def test_reject_from_approved():
    client = TestClient(app)
    invoice_id = create_draft(client)
    force_status(invoice_id, "Approved")

    resp = client.post(f"/api/invoices/{invoice_id}/reject", json={"comment": "Duplicate"}, headers=ADMIN)
    assert resp.json()["status"] == "Rejected"

    events = load_events(invoice_id)
    assert len(events) == 1
    event = events[0]
    assert (event.previous_status, event.new_status) == ("Approved", "Rejected")
    assert event.action == "reject"
    assert event.approver_role == "manager"
    assert event.approver_email == ADMIN["x-user-email"]
    assert event.comment == "Duplicate"


@pytest.mark.parametrize("comment", [None, "", "   "])
def test_reject_requires_comment(comment):
    client = TestClient(app)
    invoice_id = create_draft(client)
    client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)

    body = {} if comment is None else {"comment": comment}
    resp = client.post(f"/api/invoices/{invoice_id}/reject", json=body, headers=MANAGER)
    assert resp.status_code == 400
    assert resp.json()["code"] == "COMMENT_REQUIRED"

    db = SessionLocal()
    try:
        assert db.get(Invoice, invoice_id).status == "Submitted"
    finally:
        db.close()
    assert len(load_events(invoice_id)) == 1


@pytest.mark.parametrize("status,action", INVALID_PAIRS)
def test_invalid_transitions_leave_invoice_unchanged(status, action):
    client = TestClient(app)
    invoice_id = create_draft(client)
    force_status(invoice_id, status)

    resp = client.post(f"/api/invoices/{invoice_id}/{action}", json=transition_body(action), headers=MANAGER)
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "INVALID_STATUS"
    assert body["current_status"] == status

    db = SessionLocal()
    try:
        assert db.get(Invoice, invoice_id).status == status
    finally:
        db.close()
    assert load_events(invoice_id) == []


def test_submit_error_message():
    client = TestClient(app)
    invoice_id = create_draft(client)
    client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)

    resp = client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)
    assert resp.json()["error"] == "Only Draft invoices can be submitted"


@pytest.mark.parametrize("action", ["submit", "approve", "reject", "reopen"])
def test_driver_cannot_transition(action):
    client = TestClient(app)
    invoice_id = create_draft(client)

    resp = client.post(f"/api/invoices/{invoice_id}/{action}", json=transition_body(action), headers=DRIVER)
    assert resp.status_code == 403
    assert resp.json()["code"] == "ACCESS_DENIED"
    assert load_events(invoice_id) == []


def test_missing_role_header_defaults_to_driver():
    client = TestClient(app)
    invoice_id = create_draft(client)

    resp = client.post(f"/api/invoices/{invoice_id}/submit")
    assert resp.status_code == 403
    assert resp.json()["current"] == "Driver"


def test_transition_unknown_invoice():
    client = TestClient(app)
    resp = client.post("/api/invoices/missing/submit", headers=MANAGER)
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_concurrent_transition_loses_compare_and_swap():
    client = TestClient(app)
    invoice_id = create_draft(client)
    identity = Identity(role="Manager", email="manager@example.com")

    stale = SessionLocal()
    try:
        # Load the invoice as Draft, then let another session submit it
        assert stale.get(Invoice, invoice_id).status == "Draft"
        other = SessionLocal()
        try:
            ApprovalWorkflow(other, AuditRecorder()).transition(invoice_id, WorkflowAction.SUBMIT, identity)
        finally:
            other.close()

        with pytest.raises(InvalidStatus) as excinfo:
            ApprovalWorkflow(stale, AuditRecorder()).transition(invoice_id, WorkflowAction.SUBMIT, identity)
        assert excinfo.value.current_status == "Submitted"
    finally:
        stale.close()

    assert len(load_events(invoice_id)) == 1


def test_transition_increments_metric():
    client = TestClient(app)
    invoice_id = create_draft(client)
    labels = {"action": "submit", "role": "field"}
    before = REGISTRY.get_sample_value("approval_events_total", labels) or 0.0

    client.post(f"/api/invoices/{invoice_id}/submit", headers=MANAGER)

    assert REGISTRY.get_sample_value("approval_events_total", labels) == before + 1
