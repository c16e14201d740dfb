from dataclasses import replace
from types import SimpleNamespace

import pytest

from marketplace.core.errors import Forbidden, NotFound
from marketplace.models.order import Order
from marketplace.models.user import Role, User
from marketplace.services.auth import create_access_token, decode_access_token, hash_password, verify_password
from marketplace.services.authorization import Actor, OrderAction, authorize_order, scope_orders
from marketplace.services.checkout import place_order
from marketplace.services.order_status import OrderStatus
from tests.fixtures_data import DEFAULT_PASSWORD, REGISTER_BUYER, REGISTER_SELLER


def _order(buyer_id=1, seller_ids=(2,), status="pending"):
    return SimpleNamespace(
        buyer_id=buyer_id,
        status=status,
        order_items=[SimpleNamespace(seller_id=seller_id) for seller_id in seller_ids],
    )


def test_register_buyer_normalizes_email_and_returns_token(client):
    response = client.post("/api/auth/register", json=REGISTER_BUYER)

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "ama@example.com"
    assert body["user"]["role"] == "buyer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


def test_register_seller_waits_for_approval(client, factory, auth_headers):
    response = client.post("/api/auth/register", json=REGISTER_SELLER)
    assert response.json()["user"]["role"] == "pending_seller"
    user_id = response.json()["user"]["id"]
    token = response.json()["access_token"]

    blocked = client.post(
        "/api/products",
        json={"title": "Woven basket", "price": "12.00"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert blocked.status_code == 403

    admin = factory.user(Role.ADMIN)
    approved = client.post(f"/api/admin/users/{user_id}/approve-seller", headers=auth_headers(admin))
    assert approved.status_code == 200
    assert approved.json()["role"] == "seller"

    again = client.post(f"/api/admin/users/{user_id}/approve-seller", headers=auth_headers(admin))
    assert again.status_code == 400


def test_duplicate_email_is_rejected(client):
    client.post("/api/auth/register", json=REGISTER_BUYER)
    response = client.post("/api/auth/register", json={**REGISTER_BUYER, "email": "AMA@example.com"})
    assert response.status_code == 409
    assert response.json()["code"] == "email_taken"


def test_login_and_token_endpoints(client, factory):
    user = factory.user(Role.BUYER, email="login@example.com")

    ok = client.post("/api/auth/login", json={"email": "LOGIN@example.com", "password": DEFAULT_PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["user"]["id"] == user.id

    bad = client.post("/api/auth/login", json={"email": "login@example.com", "password": "wrong-password"})
    assert bad.status_code == 401
    assert bad.headers["www-authenticate"] == "Bearer"

    form = client.post("/api/auth/token", data={"username": "login@example.com", "password": DEFAULT_PASSWORD})
    assert form.status_code == 200
    assert form.json()["token_type"] == "bearer"


def test_invalid_and_missing_tokens(client):
    assert client.get("/api/auth/me").status_code == 401
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


def test_inactive_user_cannot_authenticate(client, db, factory, auth_headers):
    user = factory.user(Role.BUYER)
    headers = auth_headers(user)
    user.is_active = False
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_token_round_trip_and_expiry(settings):
    payload = decode_access_token(settings, create_access_token(settings, 42, extra={"role": "admin"}))
    assert payload["sub"] == "42"
    assert payload["role"] == "admin"

    expired = create_access_token(settings, 42, expires_minutes=-1)
    with pytest.raises(ValueError):
        decode_access_token(settings, expired)

    with pytest.raises(ValueError):
        decode_access_token(replace(settings, jwt_secret_key="other"), create_access_token(settings, 1))


def test_password_hashing():
    hashed = hash_password("s3cret-pass")
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret-pass", "not-a-bcrypt-hash")


def test_buyer_sees_only_own_orders():
    buyer = Actor(user_id=1, role=Role.BUYER)
    authorize_order(buyer, _order(buyer_id=1), OrderAction.VIEW)
    with pytest.raises(NotFound):
        authorize_order(buyer, _order(buyer_id=9), OrderAction.VIEW)


def test_buyer_may_cancel_only_pending():
    buyer = Actor(user_id=1, role=Role.BUYER)
    authorize_order(buyer, _order(), OrderAction.UPDATE_STATUS, OrderStatus.CANCELED)
    with pytest.raises(Forbidden):
        authorize_order(buyer, _order(), OrderAction.UPDATE_STATUS, OrderStatus.PROCESSING)
    with pytest.raises(Forbidden):
        authorize_order(buyer, _order(status="processing"), OrderAction.UPDATE_STATUS, OrderStatus.CANCELED)
    with pytest.raises(Forbidden):
        authorize_order(buyer, _order(), OrderAction.REFUND)


def test_seller_acts_on_orders_with_their_items():
    seller = Actor(user_id=2, role=Role.SELLER)
    authorize_order(seller, _order(seller_ids=(2, 3)), OrderAction.UPDATE_STATUS, OrderStatus.PROCESSING)
    with pytest.raises(NotFound):
        authorize_order(seller, _order(seller_ids=(3,)), OrderAction.VIEW)
    with pytest.raises(Forbidden):
        authorize_order(seller, _order(seller_ids=(2,)), OrderAction.CONFIRM_PAYMENT)


def test_pending_seller_and_admin_policies():
    pending = Actor(user_id=2, role=Role.PENDING_SELLER)
    with pytest.raises(NotFound):
        authorize_order(pending, _order(seller_ids=(2,)), OrderAction.VIEW)

    admin = Actor(user_id=99, role=Role.ADMIN)
    for action in OrderAction:
        authorize_order(admin, _order(), action, OrderStatus.SHIPPED)


def test_order_listing_is_scoped_per_role(db, factory):
    seller = factory.user(Role.SELLER)
    other_seller = factory.user(Role.SELLER)
    buyer = factory.user(Role.BUYER)
    other_buyer = factory.user(Role.BUYER)
    pending = factory.user(Role.PENDING_SELLER)
    admin = factory.user(Role.ADMIN)

    factory.cart(buyer, factory.product(seller))
    mine = place_order(db, buyer)
    factory.cart(other_buyer, factory.product(other_seller))
    theirs = place_order(db, other_buyer)

    def ids(user: User):
        return {order.id for order in scope_orders(Actor.from_user(user), db.query(Order)).all()}

    assert ids(buyer) == {mine.id}
    assert ids(seller) == {mine.id}
    assert ids(other_seller) == {theirs.id}
    assert ids(pending) == set()
    assert ids(admin) == {mine.id, theirs.id}


def test_admin_only_endpoints(client, factory, auth_headers):
    buyer = factory.user(Role.BUYER)
    admin = factory.user(Role.ADMIN)

    assert client.get("/api/admin/users", headers=auth_headers(buyer)).status_code == 403
    listed = client.get("/api/admin/users", params={"role": "buyer"}, headers=auth_headers(admin))
    assert listed.status_code == 200
    assert [user["id"] for user in listed.json()] == [buyer.id]
    assert client.get("/api/admin/orders", headers=auth_headers(admin)).json() == []
