from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient


def _create_event(client: TestClient, **overrides) -> dict:
    now = datetime.now(UTC)
    payload = {
        "name": "Annual meeting",
        "options": ["For", "Against"],
        "opens_at": (now + timedelta(days=1)).isoformat(),
        "closes_at": (now + timedelta(days=2)).isoformat(),
    }
    payload.update(overrides)
    response = client.post("/api/voting-events", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_event_returns_descriptor_and_admin_token(client: TestClient) -> None:
    created = _create_event(client, capacity=8)

    assert created["state"] == "CONFIGURED"
    assert created["admin_token"]
    assert created["accumulator_capacity"] == 8
    assert created["accumulator_root"].startswith("0x")
    assert [option["text"] for option in created["options"]] == ["For", "Against"]
    assert created["tally_rule"] == "UNIT"

    fetched = client.get(f"/api/voting-events/{created['id']}")
    assert fetched.status_code == 200
    body = fetched.json()
    assert "admin_token" not in body
    assert body["member_count"] == 0
    assert body["total_votes"] == 0


def test_draft_event_without_options(client: TestClient) -> None:
    response = client.post("/api/voting-events", json={"name": "Draft"})

    assert response.status_code == 201
    assert response.json()["state"] == "DRAFT"
    assert response.json()["accumulator_capacity"] == 20


def test_create_event_validation(client: TestClient) -> None:
    now = datetime.now(UTC)
    invalid_payloads = [
        {"options": ["Yes", "No"]},
        {"name": "", "options": ["Yes", "No"]},
        {"name": "One option", "options": ["Only"]},
        {
            "name": "Backwards",
            "options": ["Yes", "No"],
            "opens_at": now.isoformat(),
            "closes_at": (now - timedelta(hours=1)).isoformat(),
        },
        {"name": "Weighted", "options": ["Yes", "No"], "power_mode": "WEIGHTED"},
    ]

    for payload in invalid_payloads:
        response = client.post("/api/voting-events", json=payload)
        assert response.status_code == 422, payload


def test_unknown_event_returns_404(client: TestClient) -> None:
    assert client.get("/api/voting-events/9999").status_code == 404
    assert client.get("/api/voting-events/9999/results").status_code == 404


def test_update_requires_admin_token(client: TestClient) -> None:
    created = _create_event(client)
    url = f"/api/voting-events/{created['id']}"

    assert client.patch(url, json={"options": ["A", "B"]}).status_code == 401
    assert client.patch(url, json={"options": ["A", "B"]}, headers={"X-Admin-Token": "wrong"}).status_code == 403

    response = client.patch(
        url,
        json={"options": ["A", "B", "C"], "power_mode": "WEIGHTED", "weighted_points": 6},
        headers={"X-Admin-Token": created["admin_token"]},
    )
    assert response.status_code == 200
    body = response.json()
    assert [option["text"] for option in body["options"]] == ["A", "B", "C"]
    assert body["power_mode"] == "WEIGHTED"
    assert body["weighted_points"] == 6
    assert body["opens_at"] is not None


def test_update_rejects_inverted_window(client: TestClient) -> None:
    created = _create_event(client)
    now = datetime.now(UTC)

    response = client.patch(
        f"/api/voting-events/{created['id']}",
        json={"closes_at": now.isoformat()},
        headers={"X-Admin-Token": created["admin_token"]},
    )

    assert response.status_code == 422


def test_validate_admin_token(client: TestClient) -> None:
    created = _create_event(client)
    url = f"/api/voting-events/{created['id']}/validate-admin-token"

    assert client.post(url, json={"admin_token": created["admin_token"]}).json() == {"valid": True}
    assert client.post(url, json={"admin_token": "guess"}).json() == {"valid": False}


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/api/healthz").json()["status"] == "ok"
    assert client.get("/api/readyz").json()["status"] == "ready"
