"""
Tests end-to-end de la API de verificación (TestClient).

Cobertura:
- Flujo completo: sesión -> escaneo -> PIN -> canje -> escanear siguiente
- Errores del dominio como JSON {error, detail} con su status HTTP
- Autenticación de staff (rol scanner)
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from shared.auth.jwt_handler import create_access_token
from services.ticket_verification.routes.verification import get_now, get_ticket_store
from services.ticket_verification.services.session_store import InMemorySessionStore, get_session_store


BASE = "/api/v1/verification"


def auth_headers(role: str = "scanner"):
    token = create_access_token({"sub": "staff-1", "email": "staff@example.com", "app_metadata": {"role": role}})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(store, clock):
    sessions = InMemorySessionStore()
    app.dependency_overrides[get_ticket_store] = lambda: store
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_now] = lambda: clock(1)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return auth_headers()


def open_scan(client, headers, payload="https://app.example/ticket/ABC123"):
    session_id = client.post(f"{BASE}/sessions", headers=headers).json()["session_id"]
    client.post(f"{BASE}/sessions/{session_id}/start", json={"camera_available": True}, headers=headers)
    response = client.post(f"{BASE}/sessions/{session_id}/payload", json={"payload": payload}, headers=headers)
    return session_id, response


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "crodify-verification"}


def test_full_verification_flow(client, headers, store):
    created = client.post(f"{BASE}/sessions", headers=headers)
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    assert created.json()["scan_state"] == "idle"

    started = client.post(f"{BASE}/sessions/{session_id}/start", json={"camera_available": True}, headers=headers)
    assert started.json()["scan_state"] == "scanning"

    scanned = client.post(
        f"{BASE}/sessions/{session_id}/payload",
        json={"payload": "https://app.example/ticket/ABC123"},
        headers=headers
    )
    assert scanned.status_code == 200
    body = scanned.json()
    assert body["scan_state"] == "success"
    assert body["ticket"]["event_name"] == "Congreso Nacional"
    assert body["ticket"]["holder"] is None

    wrong = client.post(f"{BASE}/sessions/{session_id}/authorize", json={"pin": "12345"}, headers=headers)
    assert wrong.status_code == 401
    assert wrong.json()["error"] == "incorrect_pin"

    authorized = client.post(f"{BASE}/sessions/{session_id}/authorize", json={"pin": "012345"}, headers=headers)
    body = authorized.json()
    assert body["authorization"] == "authorized"
    assert body["failed_pin_attempts"] == 1
    assert body["ticket"]["holder"]["name"] == "Ana Pérez"
    assert [b["id"] for b in body["benefits"]] == ["lunch", "kit"]

    redeemed = client.post(f"{BASE}/sessions/{session_id}/benefits/lunch/redeem", headers=headers)
    assert redeemed.status_code == 200
    lunch = next(b for b in redeemed.json()["benefits"] if b["id"] == "lunch")
    assert lunch["status"] == "in_progress"
    assert store.tickets["ABC123"].version == 1

    again = client.post(f"{BASE}/sessions/{session_id}/benefits/lunch/redeem", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"] == "already_used_today"

    bulk = client.post(f"{BASE}/sessions/{session_id}/benefits/redeem-today", json={"pin": "012345"}, headers=headers)
    assert bulk.status_code == 200
    assert bulk.json()["marked"] == ["kit"]

    reset = client.post(f"{BASE}/sessions/{session_id}/reset", headers=headers)
    assert reset.json()["scan_state"] == "idle"
    assert reset.json()["authorization"] == "unauthorized"
    assert reset.json()["ticket"] is None

    assert client.delete(f"{BASE}/sessions/{session_id}", headers=headers).status_code == 204
    assert client.get(f"{BASE}/sessions/{session_id}", headers=headers).status_code == 404


def test_unresolvable_payload_keeps_scanning(client, headers):
    session_id, response = open_scan(client, headers, payload="   ")
    assert response.status_code == 400
    assert response.json()["error"] == "unresolvable_id"
    assert client.get(f"{BASE}/sessions/{session_id}", headers=headers).json()["scan_state"] == "scanning"


def test_unknown_ticket_moves_to_error(client, headers):
    session_id, response = open_scan(client, headers, payload="NOPE")
    assert response.status_code == 404
    state = client.get(f"{BASE}/sessions/{session_id}", headers=headers).json()
    assert state["scan_state"] == "error"
    assert state["last_error"]["error"] == "ticket_not_found"


def test_camera_unavailable(client, headers):
    session_id = client.post(f"{BASE}/sessions", headers=headers).json()["session_id"]
    response = client.post(f"{BASE}/sessions/{session_id}/start", json={"camera_available": False}, headers=headers)
    assert response.json()["scan_state"] == "camera_unavailable"
    assert response.json()["last_error"]["error"] == "camera_unavailable"


def test_redeem_without_pin_is_forbidden(client, headers, store):
    session_id, _ = open_scan(client, headers)
    response = client.post(f"{BASE}/sessions/{session_id}/benefits/kit/redeem", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "unauthorized"
    assert store.writes == []


def test_write_failure_is_reported_and_rolled_back(client, headers, store):
    session_id, _ = open_scan(client, headers)
    client.post(f"{BASE}/sessions/{session_id}/authorize", json={"pin": "012345"}, headers=headers)
    store.fail_writes = True

    response = client.post(f"{BASE}/sessions/{session_id}/benefits/kit/redeem", headers=headers)
    assert response.status_code == 502
    assert response.json()["error"] == "persistence_failure"

    kit = next(
        b for b in client.get(f"{BASE}/sessions/{session_id}", headers=headers).json()["benefits"]
        if b["id"] == "kit"
    )
    assert kit["status"] == "available"


def test_toggle_status(client, headers, store):
    session_id, _ = open_scan(client, headers)
    client.post(f"{BASE}/sessions/{session_id}/authorize", json={"pin": "012345"}, headers=headers)

    response = client.post(f"{BASE}/sessions/{session_id}/status/toggle", headers=headers)
    assert response.json()["ticket"]["status"] == "cancelled"

    blocked = client.post(f"{BASE}/sessions/{session_id}/benefits/kit/redeem", headers=headers)
    assert blocked.status_code == 422
    assert blocked.json()["error"] == "ticket_cancelled"


def test_requires_scanner_role(client):
    response = client.post(f"{BASE}/sessions", headers=auth_headers(role="user"))
    assert response.status_code == 403


def test_requires_token(client):
    assert client.post(f"{BASE}/sessions").status_code in (401, 403)
