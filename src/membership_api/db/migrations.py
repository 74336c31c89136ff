"""Run Alembic migrations in-process against the application's engine."""

from __future__ import annotations

import logging

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Connection, make_url

from membership_api.common.logging import log_context
from membership_api.settings import Settings

from .database import Database, DatabaseConfig, build_sync_url

logger = logging.getLogger(__name__)

__all__ = ["ensure_database_ready", "load_alembic_config", "upgrade_database"]


def load_alembic_config(settings: Settings) -> Config:
    config_path = settings.alembic_ini_path
    if not config_path.exists():
        msg = f"Alembic configuration not found at {config_path}"
        raise FileNotFoundError(msg)
    config = Config(str(config_path))
    # Keep the process logging configuration when migrations run in-process.
    config.attributes["configure_logger"] = False
    config.set_main_option("script_location", str(settings.alembic_migrations_dir))
    return config


def upgrade_database(settings: Settings, connection: Connection | None = None) -> None:
    """Upgrade to ``head`` either on ``connection`` or on a fresh sync engine."""

    config = load_alembic_config(settings)
    # ConfigParser treats % as interpolation; escape to keep URL encoding intact.
    safe_url = build_sync_url(DatabaseConfig.from_settings(settings)).replace("%", "%%")
    config.set_main_option("sqlalchemy.url", safe_url)
    if connection is not None:
        config.attributes["connection"] = connection
    command.upgrade(config, "head")


async def ensure_database_ready(database: Database, settings: Settings) -> None:
    """Apply pending migrations through the live engine.

    Reusing the engine keeps ``:memory:`` databases (StaticPool) migrated in place.
    """

    safe_url = make_url(settings.database_url).render_as_string(hide_password=True)
    async with database.engine.begin() as connection:
        await connection.run_sync(
            lambda sync_connection: upgrade_database(settings, connection=sync_connection)
        )
    logger.info("db.migrate.complete", extra=log_context(database_url=safe_url))
