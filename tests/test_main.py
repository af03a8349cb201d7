from fastapi.testclient import TestClient
from invoice_backend.app.main import app

client = TestClient(app)


def test_read_root():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"app": "FlexGo Billing backend", "status": "ok"}


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_check_generates_request_id():
    response = client.get("/health")
    assert response.headers["x-request-id"]
