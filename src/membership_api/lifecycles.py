"""FastAPI lifespan helpers for the membership API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import Lifespan
from sqlalchemy.engine import make_url

from membership_api.common.logging import log_context
from membership_api.common.task_queue import TaskQueue
from membership_api.db import DatabaseConfig, db, session_scope
from membership_api.db.migrations import ensure_database_ready
from membership_api.features.auto_grant.tasks import register_auto_grant_handlers
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.settings import Settings

logger = logging.getLogger(__name__)


async def seed_system_sub_roles() -> None:
    async with session_scope() as session:
        await SubRoleRegistry(session=session).sync_system_roles()


def create_application_lifespan(*, settings: Settings) -> Lifespan[FastAPI]:
    """Return the lifespan handler used by the app factory."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings
        safe_url = make_url(settings.database_url).render_as_string(hide_password=True)
        logger.info("db.init.start", extra=log_context(database_url=safe_url))
        db.init(DatabaseConfig.from_settings(settings))

        try:
            if settings.database_auto_migrate:
                await ensure_database_ready(db, settings)
            if settings.sub_roles_seed_on_startup:
                await seed_system_sub_roles()

            # No queue at all when auto-grant is off.
            task_queue: TaskQueue | None = None
            if settings.auto_grant_enabled:
                task_queue = TaskQueue()
                register_auto_grant_handlers(task_queue, session_factory=db.sessionmaker)
            app.state.task_queue = task_queue

            logger.info(
                "membership_api.startup",
                extra=log_context(
                    version=settings.app_version,
                    auto_grant_enabled=settings.auto_grant_enabled,
                ),
            )
            yield
        finally:
            task_queue = getattr(app.state, "task_queue", None)
            if task_queue is not None:
                task_queue.clear_subscribers()
            app.state.task_queue = None
            await db.dispose()

    return lifespan


__all__ = ["create_application_lifespan", "seed_system_sub_roles"]
