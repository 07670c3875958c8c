import importlib

import pytest
from fastapi.testclient import TestClient


SECRET_HEADERS = {"X-Service-Secret": "stub-secret"}


def get_client(monkeypatch) -> TestClient:
    monkeypatch.setenv("SERVICE_SECRET", "stub-secret")
    monkeypatch.setenv(
        "STUB_ACCOUNTS",
        "tok-alice:agent-alice:alice@example.com:10,tok-broke:agent-broke:broke@example.com:0",
    )
    monkeypatch.setenv("STUB_COST_PER_UNIT", "0.5")
    # Reload settings, the account store and the app to pick up the env for each test.
    for name in (
        "identity_stub.app.config",
        "identity_stub.app.accounts",
        "identity_stub.app.routes",
        "identity_stub.app.main",
    ):
        importlib.reload(importlib.import_module(name))
    main_module = importlib.import_module("identity_stub.app.main")
    return TestClient(main_module.app)


def verify_body(token: str) -> dict:
    return {"token": token, "service": "keyfetch", "operation": "proxy_request", "quantity": 1}


def test_verify_rejects_without_secret(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post("/v1/services/verify", json=verify_body("tok-alice"))
    assert response.status_code == 401


def test_verify_rejects_wrong_secret(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post(
        "/v1/services/verify",
        json=verify_body("tok-alice"),
        headers={"X-Service-Secret": "nope"},
    )
    assert response.status_code == 401


def test_verify_known_token(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post("/v1/services/verify", json=verify_body("tok-alice"), headers=SECRET_HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["agent_id"] == "agent-alice"
    assert data["email"] == "alice@example.com"
    assert data["balance"] == 10
    assert data["cost_per_unit"] == 0.5
    assert data["can_afford"] is True


def test_verify_broke_account_cannot_afford(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post("/v1/services/verify", json=verify_body("tok-broke"), headers=SECRET_HEADERS)
    assert response.status_code == 200
    assert response.json()["can_afford"] is False


def test_verify_unknown_token(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post("/v1/services/verify", json=verify_body("who"), headers=SECRET_HEADERS)
    assert response.status_code == 401
    assert response.json() == {"valid": False, "error": "Invalid token"}


def test_usage_deducts_credits(monkeypatch):
    client = get_client(monkeypatch)
    batch = {
        "service": "keyfetch",
        "region": "eu-frankfurt",
        "records": [
            {"agent_id": "agent-alice", "operation": "proxy_request", "quantity": 1},
            {"agent_id": "agent-alice", "operation": "proxy_request", "quantity": 2},
            {"agent_id": "agent-ghost", "operation": "proxy_request", "quantity": 1},
        ],
    }
    response = client.post("/v1/services/usage", json=batch, headers=SECRET_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"processed": 2, "total_credits_deducted": 1.5}

    verify = client.post("/v1/services/verify", json=verify_body("tok-alice"), headers=SECRET_HEADERS)
    assert verify.json()["balance"] == 8.5


def test_usage_rejects_without_secret(monkeypatch):
    client = get_client(monkeypatch)
    response = client.post("/v1/services/usage", json={"service": "keyfetch", "region": "x", "records": []})
    assert response.status_code == 401


def test_parse_accounts_rejects_malformed_entry():
    from identity_stub.app.accounts import parse_accounts

    with pytest.raises(ValueError):
        parse_accounts("token-only")


def test_parse_accounts_skips_blank_entries():
    from identity_stub.app.accounts import parse_accounts

    accounts = parse_accounts("a:agent-a:a@x.io:1, ,b:agent-b:b@x.io:2.5")
    assert [a.agent_id for a in accounts] == ["agent-a", "agent-b"]
    assert accounts[1].balance == 2.5


def test_health_reports_accounts(monkeypatch):
    client = get_client(monkeypatch)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "accounts": 2, "cost_per_unit": 0.5}
