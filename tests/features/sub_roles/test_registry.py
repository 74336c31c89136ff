"""Tests for the sub-role registry service."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.core.errors import (
    NotFoundError,
    ProtectedRoleError,
    RoleConflictError,
    RoleInUseError,
)
from membership_api.db import utc_now
from membership_api.features.content.service import VisibilityResolver
from membership_api.features.grants.service import GrantLedger
from membership_api.features.sub_roles.catalog import SYSTEM_SUB_ROLES
from membership_api.features.sub_roles.registry import SubRoleRegistry, normalize_sub_role_name
from membership_api.models import GrantedVia, SubRole, UserSubRole


@pytest.mark.asyncio
async def test_find_or_create_is_idempotent(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)

    first = await registry.find_or_create("mentor", display_name="Mentor", level=3)
    second = await registry.find_or_create("mentor", display_name="Other label", level=9)

    assert first.id == second.id
    assert second.display_name == "Mentor"
    count = await session.scalar(
        select(func.count()).select_from(SubRole).where(SubRole.name == "mentor")
    )
    assert count == 1


@pytest.mark.asyncio
async def test_find_or_create_returns_winner_after_losing_race(
    session: AsyncSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A concurrent insert of the same name resolves to the existing row."""

    registry = SubRoleRegistry(session=session)
    winner = await registry.create(name="mentor", display_name="Mentor")
    await session.commit()

    original = registry.get_by_name
    calls = 0

    async def _stale_lookup(name: str) -> SubRole | None:
        nonlocal calls
        calls += 1
        if calls == 1:
            return None  # the other writer has not committed yet
        return await original(name)

    monkeypatch.setattr(registry, "get_by_name", _stale_lookup)

    role = await registry.find_or_create("mentor", display_name="Mentor")

    assert role.id == winner.id
    assert calls == 2


@pytest.mark.asyncio
async def test_sync_system_roles_creates_catalog_once(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)

    await registry.sync_system_roles()
    await registry.sync_system_roles()
    await session.commit()

    roles = await registry.list_ordered()
    assert [role.name for role in roles] == [item.name for item in SYSTEM_SUB_ROLES]
    assert all(role.system_role for role in roles)


@pytest.mark.asyncio
async def test_sync_system_roles_repairs_labels(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)
    await registry.sync_system_roles()
    trainee = await registry.require_by_name("trainee")
    trainee.display_name = "Renamed"
    trainee.level = 99
    await session.flush()

    await registry.sync_system_roles()

    assert trainee.display_name == "Trainee"
    assert trainee.level == 4


@pytest.mark.asyncio
async def test_create_rejects_duplicate_name(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)
    await registry.create(name="mentor", display_name="Mentor")

    with pytest.raises(RoleConflictError):
        await registry.create(name="  Mentor ", display_name="Mentor again")


def test_normalize_sub_role_name() -> None:
    assert normalize_sub_role_name("  Instructor_4 ") == "instructor_4"
    with pytest.raises(ValueError):
        normalize_sub_role_name("4th level")
    with pytest.raises(ValueError):
        normalize_sub_role_name("with-dash")


@pytest.mark.asyncio
async def test_get_unknown_role_raises_not_found(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)
    with pytest.raises(NotFoundError):
        await registry.require_by_name("missing")


@pytest.mark.asyncio
async def test_system_roles_cannot_be_updated_or_deleted(session: AsyncSession) -> None:
    registry = SubRoleRegistry(session=session)
    await registry.sync_system_roles()
    admin = await registry.require_by_name("admin")

    with pytest.raises(ProtectedRoleError):
        await registry.update(admin, display_name="Root")
    with pytest.raises(ProtectedRoleError):
        await registry.delete(admin)


@pytest.mark.asyncio
async def test_delete_blocked_while_role_is_held(session, make_user, make_sub_role) -> None:
    registry = SubRoleRegistry(session=session)
    role = await make_sub_role("mentor")
    user = await make_user()
    await GrantLedger(session=session).grant(user, role, granted_via=GrantedVia.MANUAL)

    with pytest.raises(RoleInUseError) as excinfo:
        await registry.delete(role)

    assert excinfo.value.holders == 1
    assert excinfo.value.content_links == 0


@pytest.mark.asyncio
async def test_delete_blocked_while_content_requires_role(
    session, make_sub_role, make_event
) -> None:
    registry = SubRoleRegistry(session=session)
    role = await make_sub_role("mentor")
    event = await make_event("Workshop")
    await VisibilityResolver(session=session).add_required_roles_by_id(event, [role.id])

    with pytest.raises(RoleInUseError) as excinfo:
        await registry.delete(role)

    assert excinfo.value.content_links == 1


@pytest.mark.asyncio
async def test_delete_removes_role_and_revoked_grants(
    session, make_user, make_sub_role
) -> None:
    registry = SubRoleRegistry(session=session)
    role = await make_sub_role("mentor")
    user = await make_user()
    grant = await GrantLedger(session=session).grant(user, role, granted_via=GrantedVia.MANUAL)
    grant.revoked_at = utc_now()
    await session.flush()

    await registry.delete(role)
    await session.commit()

    assert await registry.get_by_name("mentor") is None
    remaining = await session.scalar(select(func.count()).select_from(UserSubRole))
    assert remaining == 0


@pytest.mark.asyncio
async def test_update_custom_role(session, make_sub_role) -> None:
    registry = SubRoleRegistry(session=session)
    role = await make_sub_role("mentor", level=2)

    updated = await registry.update(role, display_name="  Senior mentor ", level=5)

    assert updated.display_name == "Senior mentor"
    assert updated.level == 5
