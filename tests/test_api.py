"""HTTP-level tests: suggested codes, limit errors, role gates and envelopes."""

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from clientdesk.app import create_app
from clientdesk.core.config import settings
from clientdesk.core.security import issue_token_pair
from clientdesk.db.session import get_db
from clientdesk.models.client import Client
from clientdesk.services.sequences import current_year


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def SessionLocal(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def client(engine, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "")
    # Request sessions are bound to the engine handed to create_app.
    app = create_app(engine, metrics=False)
    with TestClient(app) as test_client:
        yield test_client


def _bearer(role: str) -> dict[str, str]:
    pair = issue_token_pair(subject="someone@example.com", role=role)
    return {"Authorization": f"Bearer {pair.access_token}"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert response.headers.get("X-Request-ID")


def test_suggested_code_then_create(client):
    response = client.get("/api/v1/clients/suggested-code")
    assert response.status_code == 200
    assert response.json() == {"suggestedCode": 1, "display": "001"}

    created = client.post("/api/v1/clients", json={"name": "Acme"})
    assert created.status_code == 201
    body = created.json()
    assert body["client_code"] == 1
    assert body["client_code_display"] == "001"

    second = client.post("/api/v1/clients", json={"name": "Globex"}).json()
    assert second["client_code"] == 2
    assert client.get("/api/v1/clients/suggested-code").json()["suggestedCode"] == 3


def test_limit_exceeded_is_surfaced_verbatim(client, SessionLocal):
    with SessionLocal() as db:
        db.add(Client(name="Last", client_code=999, created_at="2024-01-01T00:00:00Z", updated_at="2024-01-01T00:00:00Z"))
        db.commit()

    response = client.post("/api/v1/clients", json={"name": "Overflow"})
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "sequence_limit_exceeded"
    assert body["message"] == "Maximum client code (999) reached. Please contact administrator."
    assert body["details"] == {"namespace": "client", "max": 999}

    listing = client.get("/api/v1/clients").json()
    assert [c["name"] for c in listing] == ["Last"]


def test_explicit_code_conflict(client):
    assert client.post("/api/v1/clients", json={"name": "Acme", "client_code": 10}).status_code == 201
    response = client.post("/api/v1/clients", json={"name": "Copy", "client_code": 10})
    assert response.status_code == 409
    assert response.json()["code"] == "code_conflict"


def test_client_role_is_read_only(client):
    headers = _bearer("CLIENT")
    assert client.get("/api/v1/clients", headers=headers).status_code == 200

    forbidden = client.post("/api/v1/clients", json={"name": "Nope"}, headers=headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "http_error"
    assert client.get("/api/v1/clients/suggested-code", headers=headers).status_code == 403


def test_permanent_delete_requires_admin(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    assert client.delete(f"/api/v1/clients/{created['id']}").status_code == 200

    staff = client.delete(f"/api/v1/clients/{created['id']}/permanent", headers=_bearer("STAFF"))
    assert staff.status_code == 403

    admin = client.delete(f"/api/v1/clients/{created['id']}/permanent", headers=_bearer("ADMIN"))
    assert admin.status_code == 200
    assert admin.json() == {"status": "purged", "id": created["id"]}


def test_soft_delete_and_restore_via_api(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    client_id = created["id"]

    assert client.delete(f"/api/v1/clients/{client_id}").json()["status"] == "deleted"
    assert client.get(f"/api/v1/clients/{client_id}").status_code == 404
    assert [c["id"] for c in client.get("/api/v1/clients/junkbox").json()] == [client_id]

    assert client.get("/api/v1/clients/junkbox", headers=_bearer("STAFF")).status_code == 403

    restored = client.post(f"/api/v1/clients/{client_id}/restore")
    assert restored.status_code == 200
    assert restored.json()["deleted_at"] is None


def test_delete_blocked_returns_reason(client):
    created = client.post("/api/v1/clients", json={"name": "Busy"}).json()
    bill = client.post("/api/v1/bills", json={"client_id": created["id"], "amount": "120.00"})
    assert bill.status_code == 201
    assert bill.json()["invoice_number"] == f"INV-{current_year()}-001"

    response = client.delete(f"/api/v1/clients/{created['id']}")
    assert response.status_code == 409
    assert response.json()["code"] == "deletion_blocked"
    assert response.json()["details"] == {"open_proposals": 0, "open_invoices": 1}


def test_proposal_numbers_via_api(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    numbers = [
        client.post("/api/v1/proposals", json={"client_id": created["id"], "title": f"Scope {i}"}).json()[
            "proposal_number"
        ]
        for i in range(2)
    ]
    year = current_year()
    assert numbers == [f"{year}-001", f"{year}-002"]


def test_sequence_state_and_sync(client, SessionLocal):
    client.post("/api/v1/clients", json={"name": "Acme"})
    with SessionLocal() as db:
        db.add(Client(name="Imported", client_code=50, created_at="2024-01-01T00:00:00Z", updated_at="2024-01-01T00:00:00Z"))
        db.commit()

    state = client.get("/api/v1/sequences/client").json()
    assert state["last_issued"] == 50
    assert state["next"] == 51
    assert state["next_display"] == "051"

    synced = client.post("/api/v1/sequences/client/sync")
    assert synced.status_code == 200
    assert synced.json()["key"] == "client"

    missing = client.get("/api/v1/sequences/timesheet")
    assert missing.status_code == 404
    assert missing.json()["code"] == "unknown_namespace"


def test_validation_errors_use_envelope(client):
    response = client.post("/api/v1/clients", json={"name": ""})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    assert client.get("/api/v1/clients").status_code == 401
    assert client.get("/api/v1/clients", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/api/v1/clients", headers={"X-API-Key": "s3cret"}).status_code == 200

    token = client.post("/api/v1/auth/token", json={"apiKey": "s3cret", "role": "CLIENT"})
    assert token.status_code == 200
    bearer = {"Authorization": f"Bearer {token.json()['access_token']}"}
    assert client.post("/api/v1/clients", json={"name": "Nope"}, headers=bearer).status_code == 403


def test_restore_endpoints_require_admin(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    proposal = client.post("/api/v1/proposals", json={"client_id": created["id"], "title": "Audit"}).json()
    bill = client.post("/api/v1/bills", json={"client_id": created["id"], "amount": "10.00"}).json()
    assert client.delete(f"/api/v1/bills/{bill['id']}").status_code == 200
    assert client.delete(f"/api/v1/proposals/{proposal['id']}").status_code == 200

    for role in ("STAFF", "MANAGER"):
        headers = _bearer(role)
        assert client.post(f"/api/v1/bills/{bill['id']}/restore", headers=headers).status_code == 403
        assert client.post(f"/api/v1/proposals/{proposal['id']}/restore", headers=headers).status_code == 403
        assert client.post(f"/api/v1/clients/{created['id']}/restore", headers=headers).status_code == 403

    admin = _bearer("ADMIN")
    assert client.post(f"/api/v1/bills/{bill['id']}/restore", headers=admin).json()["deleted_at"] is None
    assert client.post(f"/api/v1/proposals/{proposal['id']}/restore", headers=admin).json()["deleted_at"] is None


def test_restoring_live_record_is_rejected(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    bill = client.post("/api/v1/bills", json={"client_id": created["id"], "amount": "10.00"}).json()

    response = client.post(f"/api/v1/bills/{bill['id']}/restore")
    assert response.status_code == 422
    assert "is not deleted" in response.json()["message"]
    assert client.post(f"/api/v1/clients/{created['id']}/restore").status_code == 422


def test_cancelled_invoice_blocks_client_delete(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    bill = client.post("/api/v1/bills", json={"client_id": created["id"], "amount": "10.00"}).json()
    assert client.patch(f"/api/v1/bills/{bill['id']}", json={"status": "CANCELLED"}).status_code == 200

    response = client.delete(f"/api/v1/clients/{created['id']}")
    assert response.status_code == 409
    assert response.json()["message"] == "Cannot delete client with 1 open invoice(s). Please archive instead."


def test_explicit_proposal_number_via_api(client):
    created = client.post("/api/v1/clients", json={"name": "Acme"}).json()
    payload = {"client_id": created["id"], "title": "Imported", "proposal_number": "2025-017"}

    first = client.post("/api/v1/proposals", json=payload)
    assert first.status_code == 201
    assert first.json()["proposal_number"] == "2025-017"

    clash = client.post("/api/v1/proposals", json=payload)
    assert clash.status_code == 409
    assert clash.json()["code"] == "code_conflict"

    malformed = client.post("/api/v1/proposals", json={**payload, "proposal_number": "17"})
    assert malformed.status_code == 422
    assert malformed.json()["code"] == "validation_error"


def test_unreachable_database_returns_503(client):
    def broken_db():
        raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

    client.app.dependency_overrides[get_db] = broken_db
    response = client.get("/api/v1/clients")
    assert response.status_code == 503
    assert response.json()["code"] == "database_unavailable"
    assert response.json()["message"] == (
        "Unable to connect to the database. Please check your database connection and try again."
    )
