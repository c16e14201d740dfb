import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

import marketplace.models  # noqa: F401  registers every table on Base.metadata
from marketplace.core.config import Settings, load_settings
from marketplace.core.database import Base, SessionLocal, configure_database
from marketplace.core.errors import register_exception_handlers
from marketplace.core.logging_setup import configure_logging
from marketplace.core.startup_checks import (
    apply_migrations,
    ensure_migrations_applied,
    validate_database_environment,
)
from marketplace.middleware.observability import ObservabilityMiddleware
from marketplace.routers.admin import router as admin_router
from marketplace.routers.analytics import router as analytics_router
from marketplace.routers.auth import router as auth_router
from marketplace.routers.cart import router as cart_router
from marketplace.routers.categories import router as categories_router
from marketplace.routers.internal_metrics import router as internal_metrics_router
from marketplace.routers.marketing import router as marketing_router
from marketplace.routers.messages import router as messages_router
from marketplace.routers.orders import router as orders_router
from marketplace.routers.payments import router as payments_router
from marketplace.routers.products import router as products_router
from marketplace.routers.saved_items import router as saved_items_router
from marketplace.routers.users import router as users_router
from marketplace.services.admin_bootstrap import BOOTSTRAP_PREFIX, upsert_admin_user
from marketplace.services.event_handlers import register_event_handlers

logger = logging.getLogger(__name__)


def _bootstrap_admin(settings: Settings) -> None:
    if not (settings.admin_email and settings.admin_password):
        logger.info("%s skipped: ADMIN_EMAIL/ADMIN_PASSWORD not set", BOOTSTRAP_PREFIX)
        return
    db = SessionLocal()
    try:
        upsert_admin_user(db, email=settings.admin_email, password=settings.admin_password)
    finally:
        db.close()


def _startup_tasks(settings: Settings, engine: Engine) -> None:
    try:
        validate_database_environment(settings)
        if settings.uses_sqlite and not settings.is_prod:
            Base.metadata.create_all(bind=engine)
        apply_migrations(settings)
        ensure_migrations_applied(engine=engine, settings=settings)
        _bootstrap_admin(settings)
    except Exception:
        logger.exception("startup failed")
        raise


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    engine = configure_database(settings)
    register_event_handlers()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        _startup_tasks(settings, engine)
        yield

    app = FastAPI(
        title="Marketplace API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ObservabilityMiddleware)
    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(admin_router)
    app.include_router(categories_router)
    app.include_router(products_router)
    app.include_router(cart_router)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(marketing_router)
    app.include_router(saved_items_router)
    app.include_router(messages_router)
    app.include_router(analytics_router)
    app.include_router(internal_metrics_router)

    @app.get("/")
    def root():
        return {"status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy", "env": settings.env_normalized}

    return app


app = create_app()
