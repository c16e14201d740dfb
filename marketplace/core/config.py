from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Request

REPO_ROOT = Path(__file__).resolve().parents[2]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer for {name}: {raw}") from exc


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./marketplace.db"
    env: str = "dev"
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ()

    jwt_secret_key: str = "dev-only-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24

    s3_endpoint_url: str | None = None
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_bucket_name: str = ""
    s3_region: str = "us-east-1"
    s3_public_url: str = ""
    s3_presign_expires_seconds: int = 900
    max_upload_bytes: int = 5 * 1024 * 1024

    auto_apply_migrations: str = ""
    alembic_config_path: Path = field(default_factory=lambda: REPO_ROOT / "alembic.ini")

    admin_email: str = ""
    admin_password: str = ""

    @property
    def env_normalized(self) -> str:
        return self.env.strip().lower()

    @property
    def is_dev(self) -> bool:
        return self.env_normalized in {"dev", "development", "local"}

    @property
    def is_prod(self) -> bool:
        return self.env_normalized in {"prod", "production"}

    @property
    def is_test(self) -> bool:
        return self.env_normalized == "test"

    @property
    def uses_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings() -> Settings:
    """Build the process settings from the environment (and .env, when present)."""
    load_dotenv()

    env = os.getenv("ENV", "dev").strip() or "dev"
    cors_raw = os.getenv("CORS_ORIGINS", "")
    cors_origins = tuple(
        origin.strip() for origin in cors_raw.split(",") if origin.strip() and origin.strip() != "*"
    )
    if not cors_origins and env.lower() in {"dev", "development", "local"}:
        cors_origins = ("http://localhost:3000", "http://127.0.0.1:3000")

    jwt_secret = os.getenv("JWT_SECRET_KEY", "").strip()
    is_prod = env.lower() in {"prod", "production"}
    if not jwt_secret:
        if is_prod:
            raise RuntimeError("JWT_SECRET_KEY must be set in production")
        jwt_secret = Settings.jwt_secret_key

    alembic_config = os.getenv("ALEMBIC_CONFIG", "").strip()

    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        env=env,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        cors_origins=cors_origins,
        jwt_secret_key=jwt_secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").strip() or "HS256",
        jwt_expire_minutes=_env_int("JWT_EXPIRE_MINUTES", 60 * 24),
        s3_endpoint_url=os.getenv("S3_ENDPOINT_URL", "").strip() or None,
        s3_access_key_id=os.getenv("S3_ACCESS_KEY_ID", "").strip(),
        s3_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY", "").strip(),
        s3_bucket_name=os.getenv("S3_BUCKET_NAME", "").strip(),
        s3_region=os.getenv("S3_REGION", "us-east-1").strip() or "us-east-1",
        s3_public_url=os.getenv("S3_PUBLIC_URL", "").strip().rstrip("/"),
        s3_presign_expires_seconds=_env_int("S3_PRESIGN_EXPIRES_SECONDS", 900),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024),
        auto_apply_migrations=os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower(),
        alembic_config_path=Path(alembic_config) if alembic_config else REPO_ROOT / "alembic.ini",
        admin_email=os.getenv("ADMIN_EMAIL", "").strip(),
        admin_password=os.getenv("ADMIN_PASSWORD", "").strip(),
    )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
