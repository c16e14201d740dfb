from dataclasses import replace

from marketplace.models.user import Role, User
from marketplace.services.auth import create_access_token, request_password_reset
from marketplace.services.event_bus import PASSWORD_RESET_REQUESTED, event_bus
from tests.fixtures_data import DEFAULT_PASSWORD

NEW_PASSWORD = "battery-staple-7"


def _login(client, email, password):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_profile_and_address(client, factory, auth_headers):
    user = factory.user(Role.BUYER, name="Ama")
    headers = auth_headers(user)

    profile = client.get("/api/users/profile", headers=headers).json()
    assert profile["name"] == "Ama"
    assert profile["address"] is None

    updated = client.put("/api/users/profile", json={"name": "  Ama Mensah ", "phone": "+237600000009"}, headers=headers)
    assert updated.json()["name"] == "Ama Mensah"
    assert updated.json()["phone"] == "+237600000009"

    kept_phone = client.put("/api/users/profile", json={"name": "Ama M."}, headers=headers)
    assert kept_phone.json()["phone"] == "+237600000009"

    assert client.put("/api/users/profile", json={"name": "   "}, headers=headers).status_code == 400

    address = client.put(
        "/api/users/profile/address",
        json={"street": "12 Rue de la Paix", "city": "Douala", "country": "CM", "postal_code": " "},
        headers=headers,
    )
    assert address.json() == {"street": "12 Rue de la Paix", "city": "Douala", "postal_code": None, "country": "CM"}
    assert client.get("/api/users/profile/address", headers=headers).json()["city"] == "Douala"
    assert client.get("/api/users/profile", headers=headers).json()["address"]["country"] == "CM"


def test_change_password(client, factory, auth_headers):
    user = factory.user(Role.SELLER, email="pw@example.com")
    headers = auth_headers(user)
    body = {"current_password": DEFAULT_PASSWORD, "new_password": NEW_PASSWORD, "new_password_confirmation": NEW_PASSWORD}

    wrong = client.put("/api/users/me/password", json={**body, "current_password": "nope"}, headers=headers)
    assert wrong.status_code == 400
    assert wrong.json()["code"] == "wrong_password"

    mismatch = client.put("/api/users/me/password", json={**body, "new_password_confirmation": "other-pass-1"}, headers=headers)
    assert mismatch.status_code == 422

    assert client.put("/api/users/me/password", json=body, headers=headers).status_code == 200
    assert _login(client, "pw@example.com", DEFAULT_PASSWORD).status_code == 401
    assert _login(client, "pw@example.com", NEW_PASSWORD).status_code == 200


def test_password_reset_flow(client, factory):
    factory.user(Role.BUYER, email="reset@example.com")
    issued = []
    event_bus.subscribe(PASSWORD_RESET_REQUESTED, issued.append)
    try:
        unknown = client.post("/api/auth/reset-password", json={"email": "ghost@example.com"})
        known = client.post("/api/auth/reset-password", json={"email": "RESET@example.com"})
    finally:
        event_bus.unsubscribe(PASSWORD_RESET_REQUESTED, issued.append)

    assert unknown.status_code == known.status_code == 202
    assert unknown.json() == known.json()
    [event] = issued
    token = event["token"]

    # a reset token is not a session
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401

    confirm = {"token": token, "new_password": NEW_PASSWORD, "new_password_confirmation": NEW_PASSWORD}
    assert client.post("/api/auth/reset-password/confirm", json=confirm).status_code == 200
    assert _login(client, "reset@example.com", NEW_PASSWORD).status_code == 200

    reused = client.post("/api/auth/reset-password/confirm", json=confirm)
    assert reused.status_code == 400
    assert reused.json()["code"] == "invalid_reset_token"


def test_reset_rejects_foreign_tokens(client, db, factory, settings):
    user = factory.user(Role.BUYER, email="other@example.com")
    session_token = create_access_token(settings, user.id)
    forged = request_password_reset(db, replace(settings, jwt_secret_key="elsewhere"), "other@example.com")

    for token in (session_token, forged, "garbage"):
        response = client.post(
            "/api/auth/reset-password/confirm",
            json={"token": token, "new_password": NEW_PASSWORD, "new_password_confirmation": NEW_PASSWORD},
        )
        assert response.status_code == 400
    assert request_password_reset(db, settings, "nobody@example.com") is None


def test_admin_rejects_pending_seller(client, db, factory, auth_headers):
    pending = factory.user(Role.PENDING_SELLER)
    admin = auth_headers(factory.user(Role.ADMIN))

    rejected = client.post(
        f"/api/admin/users/{pending.id}/reject-seller",
        json={"reason": "Incomplete documents"},
        headers=admin,
    )
    assert rejected.status_code == 200
    assert rejected.json()["role"] == "buyer"

    again = client.post(f"/api/admin/users/{pending.id}/reject-seller", headers=admin)
    assert again.status_code == 400
    assert again.json()["code"] == "not_pending_seller"
    assert client.post("/api/admin/users/999/reject-seller", headers=admin).status_code == 404

    db.expire_all()
    assert db.get(User, pending.id).role == "buyer"


def test_admin_dashboard(client, factory, auth_headers):
    seller = factory.user(Role.SELLER)
    buyer = factory.user(Role.BUYER)
    factory.user(Role.PENDING_SELLER)
    admin = factory.user(Role.ADMIN)
    factory.cart(buyer, factory.product(seller, price="30.00"), quantity=2)
    factory.product(seller)
    client.post("/api/orders", json={}, headers=auth_headers(buyer))

    response = client.get("/api/admin/dashboard", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {
        "total_users": 4,
        "total_buyers": 1,
        "total_sellers": 1,
        "pending_sellers": 1,
        "total_products": 2,
        "total_orders": 1,
        "total_revenue": "60.00",
    }
    assert client.get("/api/admin/dashboard", headers=auth_headers(buyer)).status_code == 403
