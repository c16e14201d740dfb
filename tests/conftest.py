from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import marketplace.models  # noqa: F401
from marketplace.core.config import Settings
from marketplace.core.database import Base, get_db
from marketplace.core.metrics import request_metrics
from marketplace.main import create_app
from marketplace.models.cart import CartItem
from marketplace.models.category import Category
from marketplace.models.discount import DiscountCode
from marketplace.models.product import Product
from marketplace.models.user import Role, User
from marketplace.services.auth import hash_password, issue_token_for
from tests.fixtures_data import DEFAULT_PASSWORD

_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)


def make_settings(**overrides) -> Settings:
    values = {
        "env": "test",
        "database_url": "sqlite://",
        "jwt_secret_key": "test-secret",
        "s3_bucket_name": "marketplace-test",
        "s3_access_key_id": "test-key",
        "s3_secret_access_key": "test-secret-key",
        "s3_public_url": "https://cdn.example.com",
    }
    values.update(overrides)
    return Settings(**values)


class Factory:
    """Persists rows with sensible defaults; each call commits."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role: Role = Role.BUYER, *, email: str | None = None, name: str = "Test User") -> User:
        n = self._next()
        return self._save(
            User(
                name=name,
                email=email or f"{role.value}{n}@example.com",
                password_hash=_PASSWORD_HASH,
                role=role.value,
                is_active=True,
            )
        )

    def category(self, name: str | None = None) -> Category:
        n = self._next()
        name = name or f"Category {n}"
        return self._save(Category(name=name, slug=name.lower().replace(" ", "-")))

    def product(
        self,
        seller: User,
        *,
        price: str = "10.00",
        stock: int = 10,
        category: Category | None = None,
        title: str | None = None,
    ) -> Product:
        n = self._next()
        return self._save(
            Product(
                seller_id=seller.id,
                category_id=category.id if category else None,
                title=title or f"Product {n}",
                price=Decimal(price),
                stock=stock,
                images=[],
                is_active=True,
            )
        )

    def discount(
        self,
        seller: User,
        *,
        code: str = "SAVE10",
        discount_type: str = "percentage",
        value: str = "10",
        start: datetime | None = None,
        end: datetime | None = None,
        **fields,
    ) -> DiscountCode:
        now = datetime.now(timezone.utc)
        fields.setdefault("eligible_product_ids", [])
        fields.setdefault("eligible_category_ids", [])
        fields.setdefault("usage_count", 0)
        fields.setdefault("is_active", True)
        return self._save(
            DiscountCode(
                seller_id=seller.id,
                code=code,
                discount_type=discount_type,
                value=Decimal(value),
                start_date=start or now - timedelta(days=1),
                end_date=end or now + timedelta(days=30),
                **fields,
            )
        )

    def cart(self, buyer: User, product: Product, quantity: int = 1) -> CartItem:
        return self._save(CartItem(user_id=buyer.id, product_id=product.id, quantity=quantity))


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
def app(settings, session_factory):
    application = create_app(settings)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_db] = override_get_db
    request_metrics.reset()
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    def build(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token_for(settings, user)}"}

    return build
