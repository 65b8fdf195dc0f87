"""Tests for registration, login and token routes."""

import pytest
from fastapi.testclient import TestClient

from app.client import PortalError
from app.main import create_app
from app.models.portal import AuditLog, User
from app.services.encryption import Envelope
from app.services.keystore import FileKeyStore, MemoryKeyStore, StorageUnavailable
from app.services.platform import PlatformError

P_SSW0RD1_SHA256 = "f7745f4df4394027716de160fb2acd6aac36699576a8be586b75ac09acf6a0df"


def _stored_user(context, email):
    db = context.session_factory()
    try:
        return db.query(User).filter(User.email == email).one()
    finally:
        db.close()


def test_register_stores_known_digest(portal, context, platform):
    """Client seals the password, server opens it and stores SHA-256."""
    body = portal.register("Jane Doe", "jane@example.com", "P@ssw0rd1", userType="patient")

    assert body["success"] is True
    assert body["user"]["email"] == "jane@example.com"
    assert "password_hash" not in body["user"]
    assert body["token"] and body["refreshToken"]

    user = _stored_user(context, "jane@example.com")
    assert user.password_hash == P_SSW0RD1_SHA256
    # upstream platform receives the original plaintext
    assert platform.accounts["jane@example.com"][1] == "P@ssw0rd1"


def test_register_keeps_profile_fields(portal, context):
    portal.register(
        "Dr Who",
        "doc@example.com",
        "P@ssw0rd1",
        userType="doctor",
        medicalLicense="LIC-123456",
        facility="General Hospital",
        emergencyContact={"name": "Rose", "phone": "555-0100"},
    )
    user = _stored_user(context, "doc@example.com")
    assert user.user_type == "doctor"
    assert user.medical_license == "LIC-123456"
    assert user.emergency_contact == {"name": "Rose", "phone": "555-0100"}


def test_register_rejects_plaintext_password(client):
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": "Jane", "email": "jane@example.com", "password": "P@ssw0rd1"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Invalid password format"}


def test_register_rejects_tampered_password(client, client_envelope):
    sealed = client_envelope.encrypt("P@ssw0rd1")
    idx = len(sealed) // 2
    tampered = sealed[:idx] + ("A" if sealed[idx] != "A" else "B") + sealed[idx + 1:]

    resp = client.post(
        "/api/v1/auth/register",
        json={"name": "Jane", "email": "jane@example.com", "password": tampered},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid password format"


def test_register_rejects_empty_password(client, client_envelope):
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": "Jane", "email": "jane@example.com", "password": client_envelope.encrypt("")},
    )
    assert resp.status_code == 400


def test_register_duplicate_email(registered):
    with pytest.raises(PortalError) as info:
        registered.register("Jane Again", "JANE@example.com", "P@ssw0rd1")
    assert info.value.status_code == 400
    assert info.value.message == "User with this email already exists"


def test_register_writes_audit_entry(registered, context):
    db = context.session_factory()
    try:
        entries = db.query(AuditLog).filter(AuditLog.resource_type == "User").all()
    finally:
        db.close()
    assert [e.action for e in entries] == ["create"]


def test_login_success(registered):
    registered.logout()
    body = registered.login("jane@example.com", "P@ssw0rd1")
    assert body["success"] is True
    assert body["user"]["name"] == "Jane Doe"
    assert registered.token == body["token"]


def test_login_wrong_password(registered):
    with pytest.raises(PortalError) as info:
        registered.login("jane@example.com", "wrong-password")
    assert info.value.status_code == 401
    assert info.value.message == "Invalid email or password"


def test_login_unknown_email(portal):
    with pytest.raises(PortalError) as info:
        portal.login("nobody@example.com", "P@ssw0rd1")
    assert info.value.status_code == 401


def test_login_rejects_undecryptable_password(client, registered):
    resp = client.post("/api/v1/auth/login", json={"email": "jane@example.com", "password": "junk"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid password format"


def test_refresh_token(registered):
    old_token = registered.token
    body = registered.refresh()
    assert body["success"] is True
    assert registered.token != old_token


def test_refresh_requires_token(client):
    resp = client.post("/api/v1/auth/refresh", json={})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Refresh token is required"


def test_refresh_rejects_unknown_token(client):
    resp = client.post("/api/v1/auth/refresh", json={"refreshToken": "nope"})
    assert resp.status_code == 401


def test_validate_license(client):
    ok = client.post("/api/v1/auth/validate-license", json={"licenseNumber": "LIC-123456"})
    assert ok.status_code == 200
    assert ok.json()["message"] == "License validated successfully"
    assert "validUntil" in ok.json()

    bad = client.post("/api/v1/auth/validate-license", json={"licenseNumber": "12345"})
    assert bad.status_code == 400
    assert bad.json()["message"] == "Invalid license number"


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "environment": "test", "database": "connected"}


def test_device_keyed_envelope_is_not_accepted(client):
    """A per-device key the server was never given cannot open the envelope."""
    device = Envelope.for_device(MemoryKeyStore(), b"healthcare-portal.test", 1000)
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": "Jane", "email": "jane@example.com", "password": device.encrypt("P@ssw0rd1")},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid password format"


def test_key_storage_failure_is_a_generic_server_error(client, context, client_envelope):
    class UnreadableStore(FileKeyStore):
        def get(self, name):
            raise StorageUnavailable("permission denied")

    context.envelope = Envelope.for_device(UnreadableStore("/nonexistent"), b"salt", 1000)
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": "jane@example.com", "password": client_envelope.encrypt("P@ssw0rd1")},
    )
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Server error"}


def _claim_auth_id(context, auth_id):
    db = context.session_factory()
    try:
        db.add(User(auth_id=auth_id, name="Taken", email="taken@example.com", password_hash="0" * 64))
        db.commit()
    finally:
        db.close()


def test_failed_profile_insert_removes_platform_user(portal, context, platform, monkeypatch):
    _claim_auth_id(context, "auth-taken")
    monkeypatch.setattr(platform, "sign_up", lambda email, password: "auth-taken")

    with pytest.raises(PortalError) as info:
        portal.register("Jane Doe", "jane@example.com", "P@ssw0rd1")
    assert info.value.status_code == 400
    assert info.value.message == "Could not create user profile"
    assert platform.deleted == ["auth-taken"]


def test_failed_platform_cleanup_still_returns_400(portal, context, platform, monkeypatch):
    _claim_auth_id(context, "auth-taken")
    monkeypatch.setattr(platform, "sign_up", lambda email, password: "auth-taken")

    def unreachable(auth_id):
        raise PlatformError("User deletion failed", None)

    monkeypatch.setattr(platform, "delete_user", unreachable)

    with pytest.raises(PortalError) as info:
        portal.register("Jane Doe", "jane@example.com", "P@ssw0rd1")
    assert info.value.status_code == 400
    assert info.value.message == "Could not create user profile"


def test_unexpected_error_renders_json_body(context, platform, monkeypatch):
    def broken(access_token):
        raise RuntimeError("boom")

    monkeypatch.setattr(platform, "get_user_id", broken)
    with TestClient(create_app(context=context), raise_server_exceptions=False) as test_client:
        resp = test_client.get(
            "/api/v1/users/profile", headers={"Authorization": "Bearer access-token"}
        )
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "message": "Server error"}


def test_shutdown_closes_platform_client(context, platform):
    with TestClient(create_app(context=context)):
        assert platform.closed is False
    assert platform.closed is True
