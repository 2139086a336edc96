from datetime import timedelta

from conftest import PASSWORD, auth_header, register
from security import create_access_token


def test_register_owner_creates_shop_profile(client):
    data = register(client, "owner", "grocer@example.com", name="Gina")
    assert data["role"] == "owner"
    assert data["access_token"]

    response = client.get("/api/auth/me", headers=auth_header(data["access_token"]))
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["shop_profile"]["shop_name"] == "Gina's Shop"
    assert "password" not in body["data"]


def test_register_buyer_has_no_shop(client):
    data = register(client, "buyer", "shopper@example.com")
    me = client.get("/api/auth/me", headers=auth_header(data["access_token"])).json()["data"]
    assert me["shop_profile"] is None


def test_duplicate_email_conflicts(client):
    register(client, "buyer", "twice@example.com")
    response = client.post("/api/auth/register", json={
        "name": "Again", "email": "twice@example.com", "password": PASSWORD, "role": "buyer",
    })
    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "User already exists with this email"}


def test_register_validation_errors_are_listed(client):
    response = client.post("/api/auth/register", json={
        "name": "X", "email": "not-an-email", "password": "123", "role": "admin",
    })
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation error"
    assert {"name", "email", "password", "role"} <= {e["field"] for e in body["errors"]}


def test_login_and_wrong_password(client):
    register(client, "buyer", "login@example.com")

    ok = client.post("/api/auth/login", json={"email": "login@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["data"]["access_token"]

    bad = client.post("/api/auth/login", json={"email": "login@example.com", "password": "wrong-one"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid email or password"


def test_missing_token_is_forbidden(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 403
    assert response.json()["message"] == "No token provided."


def test_x_access_token_header_is_accepted(client):
    data = register(client, "buyer", "legacy@example.com")
    response = client.get("/api/auth/me", headers={"x-access-token": data["access_token"]})
    assert response.status_code == 200


def test_expired_or_tampered_token_is_unauthorized(client, settings):
    data = register(client, "buyer", "expired@example.com")
    expired = create_access_token(data["id"], "buyer", settings, expires_delta=timedelta(seconds=-10))

    for token in (expired, data["access_token"] + "x"):
        response = client.get("/api/auth/me", headers=auth_header(token))
        assert response.status_code == 401
        assert response.json()["message"] == "Unauthorized! Token is invalid or expired."


def test_role_guard(client, buyer):
    response = client.get("/api/shops/profile", headers=buyer.headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Requires Shop Owner Role!"


def test_change_password(client, buyer):
    wrong = client.post("/api/auth/change-password", headers=buyer.headers,
                        json={"current_password": "nope", "new_password": "brand-new"})
    assert wrong.status_code == 400

    response = client.post("/api/auth/change-password", headers=buyer.headers,
                           json={"current_password": PASSWORD, "new_password": "brand-new"})
    assert response.status_code == 200

    login = client.post("/api/auth/login", json={"email": "buyer@example.com", "password": "brand-new"})
    assert login.status_code == 200


def test_update_profile_and_delete_account(client, buyer):
    response = client.put("/api/users/profile", headers=buyer.headers, json={"name": "Bruno B", "phone": "+15551234567"})
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Bruno B"

    fetched = client.get(f"/api/users/{buyer.id}", headers=buyer.headers).json()["data"]
    assert fetched["phone"] == "+15551234567"

    assert client.delete("/api/users", headers=buyer.headers).status_code == 200
    assert client.get(f"/api/users/{buyer.id}", headers=buyer.headers).status_code == 404


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Resource not found"}


def test_health_reports_disabled_redis(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "ok", "redis": "disabled"}
