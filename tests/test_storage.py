from dataclasses import replace
from io import BytesIO
from types import SimpleNamespace

import pytest

from marketplace.core.errors import BadRequest, Internal
from marketplace.models.user import Role
from marketplace.services import storage


class _FakeS3Client:
    def __init__(self):
        self.uploads = []
        self.presigned = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.uploads.append({"bucket": bucket, "key": key, "body": fileobj.read(), "extra": ExtraArgs})

    def generate_presigned_url(self, operation, Params=None, ExpiresIn=None):
        self.presigned.append({"operation": operation, "params": Params, "expires": ExpiresIn})
        return f"https://s3.example.com/{Params['Key']}?signature=abc"


@pytest.fixture
def fake_s3(monkeypatch):
    client = _FakeS3Client()
    monkeypatch.setattr(storage, "get_s3_client", lambda settings: client)
    monkeypatch.setattr(storage, "uuid4", lambda: SimpleNamespace(hex="fixedkey"))
    return client


def test_upload_product_image_stores_under_seller_prefix(client, factory, auth_headers, fake_s3):
    seller = factory.user(Role.SELLER)
    product = factory.product(seller)

    response = client.post(
        f"/api/products/{product.id}/images",
        files={"file": ("Photo.PNG", b"png-bytes", "image/png")},
        headers=auth_headers(seller),
    )

    assert response.status_code == 200
    key = f"sellers/{seller.id}/products/{product.id}/fixedkey.png"
    assert response.json()["url"] == f"https://cdn.example.com/{key}"
    assert response.json()["product"]["images"] == [f"https://cdn.example.com/{key}"]
    assert fake_s3.uploads == [
        {"bucket": "marketplace-test", "key": key, "body": b"png-bytes", "extra": {"ContentType": "image/png"}}
    ]


def test_upload_rejects_non_images(client, factory, auth_headers, fake_s3):
    seller = factory.user(Role.SELLER)
    product = factory.product(seller)

    response = client.post(
        f"/api/products/{product.id}/images",
        files={"file": ("run.sh", b"echo", "image/png")},
        headers=auth_headers(seller),
    )

    assert response.status_code == 400
    assert fake_s3.uploads == []


def test_upload_rejects_empty_and_oversized_files(settings, fake_s3):
    def upload(data, limit=settings.max_upload_bytes):
        file = SimpleNamespace(
            filename="a.jpg",
            content_type="image/jpeg",
            file=BytesIO(data),
        )
        return storage.upload_product_image(
            replace(settings, max_upload_bytes=limit), file, seller_id=1, product_id=2
        )

    with pytest.raises(BadRequest):
        upload(b"")
    with pytest.raises(BadRequest):
        upload(b"12345", limit=4)
    assert upload(b"1234", limit=4).endswith("/fixedkey.jpg")


def test_presign_returns_put_url(client, factory, auth_headers, fake_s3):
    seller = factory.user(Role.SELLER)

    response = client.post(
        "/api/products/uploads/presign",
        json={"filename": "cover.webp", "content_type": "image/webp"},
        headers=auth_headers(seller),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["object_key"] == f"sellers/{seller.id}/products/fixedkey.webp"
    assert body["public_url"] == f"https://cdn.example.com/{body['object_key']}"
    assert body["expires_in"] == 900
    assert fake_s3.presigned[0]["operation"] == "put_object"
    assert fake_s3.presigned[0]["params"]["ContentType"] == "image/webp"


def test_presign_for_foreign_product_is_not_found(client, factory, auth_headers, fake_s3):
    product = factory.product(factory.user(Role.SELLER))
    response = client.post(
        "/api/products/uploads/presign",
        json={"filename": "cover.webp", "content_type": "image/webp", "product_id": product.id},
        headers=auth_headers(factory.user(Role.SELLER)),
    )
    assert response.status_code == 404
    assert fake_s3.presigned == []


def test_missing_storage_config_is_an_internal_error(settings):
    with pytest.raises(Internal):
        storage.get_s3_client(replace(settings, s3_bucket_name=""))


def test_public_url_fallbacks(settings):
    no_cdn = replace(settings, s3_public_url="")
    assert storage.public_url_for(no_cdn, "k.png") == "https://marketplace-test.s3.us-east-1.amazonaws.com/k.png"
    minio = replace(no_cdn, s3_endpoint_url="http://minio:9000/")
    assert storage.public_url_for(minio, "k.png") == "http://minio:9000/marketplace-test/k.png"
