"""Shared FastAPI dependencies: session, services and the acting user."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.task_queue import TaskQueue
from membership_api.core.actor import Actor
from membership_api.core.errors import AuthenticationError
from membership_api.db import get_db_session
from membership_api.features.content.service import VisibilityResolver
from membership_api.features.grants.service import GrantLedger
from membership_api.features.initiations.service import InitiationsService
from membership_api.features.orders.service import OrderRequestsService
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.models import User
from membership_api.settings import DEFAULT_IDENTITY_HEADER, Settings

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_task_queue(request: Request) -> TaskQueue | None:
    return getattr(request.app.state, "task_queue", None)


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
TaskQueueDep = Annotated[TaskQueue | None, Depends(get_task_queue)]


async def get_optional_user(request: Request, session: SessionDep) -> User | None:
    """Resolve the user named by the trusted identity header, if any.

    The header is set by the upstream identity proxy; a malformed or unknown
    id is treated as an authentication failure rather than as anonymous.
    """

    settings = getattr(request.app.state, "settings", None)
    header = settings.identity_header if settings is not None else DEFAULT_IDENTITY_HEADER
    raw = request.headers.get(header)
    if not raw:
        return None
    try:
        user_id = UUID(raw.strip())
    except ValueError as exc:
        raise AuthenticationError("Malformed identity header") from exc
    user = await session.get(User, user_id)
    if user is None:
        raise AuthenticationError("Unknown user")
    return user


OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]


async def get_current_user(user: OptionalUserDep) -> User:
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


async def get_optional_actor(session: SessionDep, user: OptionalUserDep) -> Actor | None:
    if user is None:
        return None
    return await GrantLedger(session=session).actor_for(user)


async def get_current_actor(session: SessionDep, user: CurrentUserDep) -> Actor:
    return await GrantLedger(session=session).actor_for(user)


OptionalActorDep = Annotated[Actor | None, Depends(get_optional_actor)]
CurrentActorDep = Annotated[Actor, Depends(get_current_actor)]


def get_sub_role_registry(session: SessionDep) -> SubRoleRegistry:
    return SubRoleRegistry(session=session)


def get_grant_ledger(session: SessionDep) -> GrantLedger:
    return GrantLedger(session=session)


def get_visibility_resolver(session: SessionDep) -> VisibilityResolver:
    return VisibilityResolver(session=session)


def get_order_requests_service(
    session: SessionDep, task_queue: TaskQueueDep, settings: SettingsDep
) -> OrderRequestsService:
    return OrderRequestsService(
        session=session, task_queue=task_queue, auto_grant=settings.auto_grant_enabled
    )


def get_initiations_service(
    session: SessionDep, task_queue: TaskQueueDep, settings: SettingsDep
) -> InitiationsService:
    return InitiationsService(
        session=session, task_queue=task_queue, auto_grant=settings.auto_grant_enabled
    )


__all__ = [
    "CurrentActorDep",
    "CurrentUserDep",
    "OptionalActorDep",
    "OptionalUserDep",
    "SessionDep",
    "SettingsDep",
    "TaskQueueDep",
    "get_app_settings",
    "get_current_actor",
    "get_current_user",
    "get_grant_ledger",
    "get_initiations_service",
    "get_optional_actor",
    "get_optional_user",
    "get_order_requests_service",
    "get_sub_role_registry",
    "get_task_queue",
    "get_visibility_resolver",
]
