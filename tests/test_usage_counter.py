import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

import marketplace.models  # noqa: F401
from marketplace.core.database import Base, build_engine
from marketplace.models.discount import DiscountCode
from marketplace.models.user import Role, User
from marketplace.services.usage_counter import (
    conditional_increment_usage,
    release_usage,
    usage_limit_reached,
)


@pytest.fixture
def file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'usage.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


def _seed_discount(Session, *, usage_limit, usage_count=0) -> int:
    now = datetime.now(timezone.utc)
    with Session() as db:
        seller = User(name="Seller", email="seller@example.com", password_hash="x", role=Role.SELLER.value)
        db.add(seller)
        db.flush()
        discount = DiscountCode(
            seller_id=seller.id,
            code="RACE",
            discount_type="percentage",
            value=Decimal("10"),
            usage_limit=usage_limit,
            usage_count=usage_count,
            eligible_product_ids=[],
            eligible_category_ids=[],
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=1),
        )
        db.add(discount)
        db.commit()
        return discount.id


def _usage_count(Session, discount_id) -> int:
    with Session() as db:
        return db.get(DiscountCode, discount_id).usage_count


def test_concurrent_checkouts_never_exceed_the_limit(file_sessions):
    limit = 5
    discount_id = _seed_discount(file_sessions, usage_limit=limit)
    barrier = threading.Barrier(limit * 2)
    outcomes: list[bool] = []
    lock = threading.Lock()

    def worker():
        with file_sessions() as db:
            barrier.wait()
            consumed = conditional_increment_usage(db, discount_id)
            db.commit()
        with lock:
            outcomes.append(consumed)

    threads = [threading.Thread(target=worker) for _ in range(limit * 2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert outcomes.count(True) == limit
    assert outcomes.count(False) == limit
    assert _usage_count(file_sessions, discount_id) == limit


def test_unlimited_code_always_increments(file_sessions):
    discount_id = _seed_discount(file_sessions, usage_limit=None)
    with file_sessions() as db:
        for _ in range(3):
            assert conditional_increment_usage(db, discount_id) is True
        db.commit()
        assert usage_limit_reached(db, discount_id) is False
    assert _usage_count(file_sessions, discount_id) == 3


def test_limit_reached_after_last_use(file_sessions):
    discount_id = _seed_discount(file_sessions, usage_limit=2, usage_count=1)
    with file_sessions() as db:
        assert usage_limit_reached(db, discount_id) is False
        assert conditional_increment_usage(db, discount_id) is True
        assert conditional_increment_usage(db, discount_id) is False
        db.commit()
        assert usage_limit_reached(db, discount_id) is True


def test_release_never_goes_below_zero(file_sessions):
    discount_id = _seed_discount(file_sessions, usage_limit=3, usage_count=1)
    with file_sessions() as db:
        assert release_usage(db, discount_id) is True
        assert release_usage(db, discount_id) is False
        db.commit()
    assert _usage_count(file_sessions, discount_id) == 0


def test_missing_code_is_not_consumed(file_sessions):
    with file_sessions() as db:
        assert conditional_increment_usage(db, 999) is False
        assert usage_limit_reached(db, 999) is False
