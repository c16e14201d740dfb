from marketplace.models.user import Role
from marketplace.utils.slug import slugify


def test_slugify():
    assert slugify("Maison & Jardin") == "maison-jardin"
    assert slugify("  Électronique  ") == "electronique"
    assert slugify("!!!") == ""


def test_admin_manages_categories(client, factory, auth_headers):
    admin = auth_headers(factory.user(Role.ADMIN))

    created = client.post("/api/categories", json={"name": "Home & Garden"}, headers=admin)
    assert created.status_code == 201
    assert created.json()["slug"] == "home-garden"

    duplicate = client.post("/api/categories", json={"name": "Home  Garden"}, headers=admin)
    assert duplicate.status_code == 409

    renamed = client.put(f"/api/categories/{created.json()['id']}", json={"name": "Garden"}, headers=admin)
    assert renamed.json()["slug"] == "garden"

    assert [c["name"] for c in client.get("/api/categories").json()] == ["Garden"]

    seller = auth_headers(factory.user(Role.SELLER))
    assert client.post("/api/categories", json={"name": "Toys"}, headers=seller).status_code == 403


def test_category_in_use_cannot_be_deleted(client, factory, auth_headers):
    admin = auth_headers(factory.user(Role.ADMIN))
    used = factory.category("Bags")
    unused = factory.category("Toys")
    factory.product(factory.user(Role.SELLER), category=used)

    blocked = client.delete(f"/api/categories/{used.id}", headers=admin)
    assert blocked.status_code == 400
    assert blocked.json()["code"] == "category_in_use"

    assert client.delete(f"/api/categories/{unused.id}", headers=admin).status_code == 204
    assert client.delete(f"/api/categories/{unused.id}", headers=admin).status_code == 404
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Bags"]


def test_seller_product_lifecycle(client, factory, auth_headers):
    category = factory.category("Crafts")
    seller = factory.user(Role.SELLER)
    headers = auth_headers(seller)

    created = client.post(
        "/api/products",
        json={"title": "Woven basket", "price": "12.50", "stock": 4, "category_id": category.id},
        headers=headers,
    )
    assert created.status_code == 201
    product = created.json()
    assert product["price"] == "12.50"
    assert product["seller_id"] == seller.id

    patched = client.patch(f"/api/products/{product['id']}", json={"stock": 9}, headers=headers)
    assert patched.json()["stock"] == 9

    nulled = client.patch(f"/api/products/{product['id']}", json={"price": None}, headers=headers)
    assert nulled.status_code == 400

    stranger = auth_headers(factory.user(Role.SELLER))
    assert client.patch(f"/api/products/{product['id']}", json={"stock": 1}, headers=stranger).status_code == 404

    listed = client.get("/api/products", params={"category_id": category.id, "q": "basket"})
    assert listed.json()["total"] == 1

    removed = client.delete(f"/api/products/{product['id']}", headers=headers)
    assert removed.json()["is_active"] is False
    assert client.get(f"/api/products/{product['id']}").status_code == 404
    assert client.get("/api/products").json()["total"] == 0


def test_product_requires_known_category(client, factory, auth_headers):
    response = client.post(
        "/api/products",
        json={"title": "Mystery", "price": "1.00", "category_id": 999},
        headers=auth_headers(factory.user(Role.SELLER)),
    )
    assert response.status_code == 400


def test_product_price_filters(client, factory):
    seller = factory.user(Role.SELLER)
    factory.product(seller, price="5.00")
    factory.product(seller, price="25.00")
    factory.product(seller, price="125.00")

    response = client.get("/api/products", params={"min_price": "10", "max_price": "100"})
    assert [item["price"] for item in response.json()["items"]] == ["25.00"]


def test_cart_add_merge_update_and_remove(client, factory, auth_headers):
    seller = factory.user(Role.SELLER)
    product = factory.product(seller, price="7.25", stock=5)
    headers = auth_headers(factory.user(Role.BUYER))

    added = client.post("/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers)
    assert added.status_code == 201
    merged = client.post("/api/cart/items", json={"product_id": product.id, "quantity": 1}, headers=headers)
    assert merged.json()["items"][0]["quantity"] == 3
    assert merged.json()["subtotal"] == "21.75"

    too_many = client.put(f"/api/cart/items/{product.id}", json={"quantity": 6}, headers=headers)
    assert too_many.status_code == 400
    assert too_many.json()["code"] == "insufficient_stock"

    updated = client.put(f"/api/cart/items/{product.id}", json={"quantity": 1}, headers=headers)
    assert updated.json()["item_count"] == 1

    removed = client.delete(f"/api/cart/items/{product.id}", headers=headers)
    assert removed.json()["items"] == []
    assert client.delete(f"/api/cart/items/{product.id}", headers=headers).status_code == 404


def test_cart_is_for_buyers(client, factory, auth_headers):
    headers = auth_headers(factory.user(Role.SELLER))
    assert client.get("/api/cart", headers=headers).status_code == 403


def test_clear_cart(client, factory, auth_headers):
    seller = factory.user(Role.SELLER)
    buyer = factory.user(Role.BUYER)
    factory.cart(buyer, factory.product(seller))
    factory.cart(buyer, factory.product(seller))

    response = client.delete("/api/cart", headers=auth_headers(buyer))
    assert response.json() == {"items": [], "item_count": 0, "subtotal": "0.00"}


def test_saved_items_are_idempotent(client, factory, auth_headers):
    product = factory.product(factory.user(Role.SELLER))
    headers = auth_headers(factory.user(Role.BUYER))

    for _ in range(2):
        assert client.post(f"/api/saved-items/{product.id}", headers=headers).json() == {
            "product_id": product.id,
            "saved": True,
        }
    saved = client.get("/api/saved-items", headers=headers).json()
    assert [entry["product"]["id"] for entry in saved] == [product.id]

    assert client.delete(f"/api/saved-items/{product.id}", headers=headers).json()["saved"] is False
    assert client.delete(f"/api/saved-items/{product.id}", headers=headers).status_code == 404
    assert client.post("/api/saved-items/999", headers=headers).status_code == 404
