from __future__ import annotations

import logging
import subprocess
import sys

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from marketplace.core.config import Settings

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"

_ENABLED = {"1", "true", "yes", "on"}
_DISABLED = {"0", "false", "no", "off"}


def validate_database_environment(settings: Settings) -> None:
    if settings.is_prod and settings.uses_sqlite:
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def should_auto_apply(settings: Settings) -> bool:
    flag = settings.auto_apply_migrations
    if flag in _DISABLED:
        return False
    if flag in _ENABLED:
        return True
    return settings.is_prod


def apply_migrations(settings: Settings) -> None:
    """Upgrade the database to head when AUTO_APPLY_MIGRATIONS (or production) asks for it."""
    if not should_auto_apply(settings):
        logger.info("%s auto migration skipped env=%s", MIGRATIONS_PREFIX, settings.env_normalized)
        return

    config_path = settings.alembic_config_path
    if not config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, config_path)
        raise RuntimeError("alembic config not found")

    logger.info("%s applying migrations to head", MIGRATIONS_PREFIX)
    try:
        subprocess.run(
            [sys.executable, "-m", "alembic", "-c", str(config_path), "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        logger.critical(
            "%s migration apply failed returncode=%s stderr=%s",
            MIGRATIONS_PREFIX,
            exc.returncode,
            (exc.stderr or "").strip(),
        )
        raise RuntimeError("Automatic migration failed") from exc

    logger.info("%s migrations applied", MIGRATIONS_PREFIX)


def ensure_migrations_applied(*, engine: Engine, settings: Settings) -> None:
    if settings.is_test or settings.is_dev:
        logger.info("%s skipped migration check env=%s", MIGRATIONS_PREFIX, settings.env_normalized)
        return

    config_path = settings.alembic_config_path
    if not config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, config_path)
        raise RuntimeError("alembic config not found")

    script_directory = ScriptDirectory.from_config(Config(str(config_path)))
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")
        rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)
