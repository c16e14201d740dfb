from __future__ import annotations

from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace.core.config import Settings

Base = declarative_base()

# Bound to an engine by configure_database() when the application is built.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def build_engine(database_url: str) -> Engine:
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        # SQLite serializes writers; wait for the lock instead of failing fast.
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


def configure_database(settings: Settings) -> Engine:
    engine = build_engine(settings.database_url)
    SessionLocal.configure(bind=engine)
    return engine


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
