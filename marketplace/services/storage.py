from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

import boto3
from fastapi import UploadFile

from marketplace.core.config import Settings
from marketplace.core.errors import BadRequest, Internal

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
BLOCKED_EXTENSIONS = {".exe", ".bat", ".cmd", ".sh", ".js", ".php", ".html", ".svg"}


def _require(settings: Settings) -> None:
    if not (settings.s3_bucket_name and settings.s3_access_key_id and settings.s3_secret_access_key):
        raise Internal("Object storage is not configured")


def get_s3_client(settings: Settings):
    _require(settings)
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region,
    )


def _sanitize_key_part(part: str) -> str:
    return str(part).strip().strip("/")


def check_image(filename: str | None, content_type: str | None) -> str:
    """Return the lowercase extension of an acceptable image upload."""
    if not filename:
        raise BadRequest("Invalid file")
    extension = Path(filename).suffix.lower()
    if extension in BLOCKED_EXTENSIONS:
        raise BadRequest("File type is not allowed")
    if (content_type or "").lower() not in ALLOWED_IMAGE_TYPES:
        raise BadRequest("Only JPEG, PNG, WebP or GIF images are accepted")
    return extension


def build_object_key(seller_id: int, product_id: int | None, extension: str) -> str:
    parts = ["sellers", _sanitize_key_part(seller_id), "products"]
    if product_id is not None:
        parts.append(_sanitize_key_part(product_id))
    parts.append(f"{uuid4().hex}{extension}")
    return "/".join(parts)


def public_url_for(settings: Settings, object_key: str) -> str:
    if settings.s3_public_url:
        return f"{settings.s3_public_url}/{object_key}"
    if settings.s3_endpoint_url:
        return f"{settings.s3_endpoint_url.rstrip('/')}/{settings.s3_bucket_name}/{object_key}"
    return f"https://{settings.s3_bucket_name}.s3.{settings.s3_region}.amazonaws.com/{object_key}"


def upload_product_image(settings: Settings, file: UploadFile, *, seller_id: int, product_id: int) -> str:
    extension = check_image(file.filename, file.content_type)

    file.file.seek(0)
    data = file.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise BadRequest(f"File exceeds {settings.max_upload_bytes} bytes")
    if not data:
        raise BadRequest("File is empty")

    object_key = build_object_key(seller_id, product_id, extension)
    file.file.seek(0)
    get_s3_client(settings).upload_fileobj(
        file.file,
        settings.s3_bucket_name,
        object_key,
        ExtraArgs={"ContentType": file.content_type},
    )
    logger.info("product image uploaded key=%s", object_key)
    return public_url_for(settings, object_key)


def presign_upload(
    settings: Settings,
    *,
    seller_id: int,
    filename: str,
    content_type: str,
    product_id: int | None = None,
) -> dict:
    extension = check_image(filename, content_type)
    object_key = build_object_key(seller_id, product_id, extension)
    url = get_s3_client(settings).generate_presigned_url(
        "put_object",
        Params={"Bucket": settings.s3_bucket_name, "Key": object_key, "ContentType": content_type},
        ExpiresIn=settings.s3_presign_expires_seconds,
    )
    return {
        "upload_url": url,
        "object_key": object_key,
        "public_url": public_url_for(settings, object_key),
        "expires_in": settings.s3_presign_expires_seconds,
    }
