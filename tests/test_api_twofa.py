"""
tests/test_api_twofa.py -- Integration tests for /api/2fa/* and the login that follows.

carol starts without 2FA; each test walks her through part of the lifecycle
over HTTP and then checks what /api/login does with the result.
"""

from __future__ import annotations

import pyotp
import pytest
from fastapi.testclient import TestClient

from conftest import Seeded, bearer, login_token


@pytest.fixture
def carol(api_client: tuple[TestClient, Seeded]) -> tuple[TestClient, dict[str, str]]:
    client, _ = api_client
    return client, bearer(login_token(client, "carol", "carolpass123"))


def _setup(client: TestClient, headers: dict[str, str]) -> str:
    resp = client.post("/api/2fa/setup", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["secret"]


def _enable(client: TestClient, headers: dict[str, str]) -> tuple[str, list[str]]:
    secret = _setup(client, headers)
    resp = client.post("/api/2fa/verify", headers=headers, json={"token": pyotp.TOTP(secret).now()})
    assert resp.status_code == 200, resp.text
    return secret, resp.json()["backupCodes"]


def test_routes_require_session(api_client: tuple[TestClient, Seeded]) -> None:
    client, _ = api_client
    assert client.get("/api/2fa/status").status_code == 401
    assert client.post("/api/2fa/setup").status_code == 401
    assert client.post("/api/2fa/verify", json={"token": "123456"}).status_code == 401


def test_setup_returns_secret_and_qr(carol) -> None:
    client, headers = carol
    resp = client.post("/api/2fa/setup", headers=headers)
    data = resp.json()
    assert len(data["secret"]) == 32
    assert data["qrCode"].startswith("data:image/png;base64,")
    assert resp.headers["cache-control"] == "no-store"
    # Setup alone does not switch anything on.
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": False}
    assert "token" in client.post("/api/login", json={"username": "carol", "password": "carolpass123"}).json()


def test_verify_enables_and_login_then_requires_code(carol) -> None:
    client, headers = carol
    secret, codes = _enable(client, headers)
    assert len(codes) == 8
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": True}

    first = client.post("/api/login", json={"username": "carol", "password": "carolpass123"})
    assert first.json() == {"requires2FA": True}
    second = client.post(
        "/api/login",
        json={"username": "carol", "password": "carolpass123", "totpToken": pyotp.TOTP(secret).now()},
    )
    assert second.status_code == 200
    assert second.json()["token"]


def test_backup_code_logs_in_once(carol) -> None:
    client, headers = carol
    _secret, codes = _enable(client, headers)
    body = {"username": "carol", "password": "carolpass123", "totpToken": codes[0]}
    assert client.post("/api/login", json=body).status_code == 200
    reused = client.post("/api/login", json=body)
    assert reused.status_code == 401
    assert reused.json() == {"error": "Invalid 2FA code"}


def test_verify_errors(carol) -> None:
    client, headers = carol
    not_set_up = client.post("/api/2fa/verify", headers=headers, json={"token": "123456"})
    assert not_set_up.status_code == 400
    assert not_set_up.json() == {"error": "2FA not set up"}

    _setup(client, headers)
    missing = client.post("/api/2fa/verify", headers=headers, json={})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Token is required"}

    wrong = client.post("/api/2fa/verify", headers=headers, json={"token": "abcdef"})
    assert wrong.status_code == 400
    assert wrong.json() == {"error": "Invalid token"}
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": False}


def test_enable_before_setup(carol) -> None:
    client, headers = carol
    resp = client.post("/api/2fa/enable", headers=headers, json={"token": "123456"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "2FA not set up. Please setup 2FA first."}


def test_enable_after_setup(carol) -> None:
    client, headers = carol
    secret = _setup(client, headers)
    resp = client.post("/api/2fa/enable", headers=headers, json={"token": pyotp.TOTP(secret).now()})
    assert resp.json() == {"success": True, "message": "2FA enabled successfully"}
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": True}


def test_disable_returns_login_to_single_factor(carol) -> None:
    client, headers = carol
    secret, _codes = _enable(client, headers)
    resp = client.post("/api/2fa/disable", headers=headers, json={"token": pyotp.TOTP(secret).now()})
    assert resp.json() == {"success": True, "message": "2FA disabled successfully"}
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": False}
    assert "token" in client.post("/api/login", json={"username": "carol", "password": "carolpass123"}).json()


def test_disable_with_wrong_code_keeps_2fa(carol) -> None:
    client, headers = carol
    _enable(client, headers)
    resp = client.post("/api/2fa/disable", headers=headers, json={"token": "12345"})
    assert resp.status_code == 400
    assert client.get("/api/2fa/status", headers=headers).json() == {"enabled": True}


def test_operations_bound_to_token_owner(api_client: tuple[TestClient, Seeded]) -> None:
    """carol's setup never touches admin's account."""
    client, _ = api_client
    carol_headers = bearer(login_token(client, "carol", "carolpass123"))
    admin_headers = bearer(login_token(client, "admin", "adminpass123"))
    _enable(client, carol_headers)
    assert client.get("/api/2fa/status", headers=admin_headers).json() == {"enabled": False}
