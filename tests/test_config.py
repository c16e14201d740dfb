from dataclasses import replace
from pathlib import Path

import pytest

from marketplace.core.config import REPO_ROOT, load_settings
from marketplace.core.startup_checks import (
    ensure_migrations_applied,
    should_auto_apply,
    validate_database_environment,
)

_ENV_VARS = (
    "ENV",
    "DATABASE_URL",
    "CORS_ORIGINS",
    "JWT_SECRET_KEY",
    "JWT_EXPIRE_MINUTES",
    "S3_PUBLIC_URL",
    "AUTO_APPLY_MIGRATIONS",
    "ALEMBIC_CONFIG",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("marketplace.core.config.load_dotenv", lambda: None)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_dev_defaults():
    settings = load_settings()
    assert settings.is_dev
    assert settings.uses_sqlite
    assert settings.cors_origins == ("http://localhost:3000", "http://127.0.0.1:3000")
    assert settings.alembic_config_path == REPO_ROOT / "alembic.ini"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ENV", "Production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/marketplace")
    monkeypatch.setenv("JWT_SECRET_KEY", "prod-secret")
    monkeypatch.setenv("CORS_ORIGINS", "https://shop.example.com, *, https://admin.example.com")
    monkeypatch.setenv("S3_PUBLIC_URL", "https://cdn.example.com/")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("ALEMBIC_CONFIG", "/srv/alembic.ini")

    settings = load_settings()

    assert settings.is_prod
    assert settings.cors_origins == ("https://shop.example.com", "https://admin.example.com")
    assert settings.s3_public_url == "https://cdn.example.com"
    assert settings.log_level == "DEBUG"
    assert settings.alembic_config_path == Path("/srv/alembic.ini")


def test_production_requires_jwt_secret(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    with pytest.raises(RuntimeError):
        load_settings()


def test_invalid_integer_is_reported(monkeypatch):
    monkeypatch.setenv("JWT_EXPIRE_MINUTES", "soon")
    with pytest.raises(RuntimeError, match="JWT_EXPIRE_MINUTES"):
        load_settings()


def test_sqlite_is_refused_in_production(settings):
    with pytest.raises(RuntimeError):
        validate_database_environment(replace(settings, env="prod"))
    validate_database_environment(settings)


@pytest.mark.parametrize(
    "env, flag, expected",
    [
        ("prod", "", True),
        ("prod", "false", False),
        ("dev", "", False),
        ("dev", "yes", True),
        ("test", "on", True),
    ],
)
def test_should_auto_apply(settings, env, flag, expected):
    assert should_auto_apply(replace(settings, env=env, auto_apply_migrations=flag)) is expected


def test_migration_check_requires_alembic_state(settings, engine):
    staging = replace(settings, env="staging")
    with pytest.raises(RuntimeError, match="no migration state"):
        ensure_migrations_applied(engine=engine, settings=staging)
    ensure_migrations_applied(engine=engine, settings=settings)
