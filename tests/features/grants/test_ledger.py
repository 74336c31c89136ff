"""Tests for the grant ledger."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.core.errors import InvalidProvenanceError, NotFoundError
from membership_api.db import Database, DatabaseConfig, metadata, utc_now
from membership_api.features.grants.provenance import (
    initiation_source,
    product_source,
    validate_provenance,
)
from membership_api.features.grants.service import GrantLedger
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.models import (
    GrantedVia,
    Initiation,
    SourceKind,
    SourceRef,
    SubRole,
    User,
    UserClassification,
    UserSubRole,
)


async def _active_count(session: AsyncSession, user_id, sub_role_id) -> int:
    return await session.scalar(
        select(func.count())
        .select_from(UserSubRole)
        .where(
            UserSubRole.user_id == user_id,
            UserSubRole.sub_role_id == sub_role_id,
            UserSubRole.revoked_at.is_(None),
        )
    )


@pytest.mark.asyncio
async def test_grant_creates_row_with_provenance(
    session, make_user, make_sub_role, make_product
) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("club_pass")
    product = await make_product("Season pass")

    grant = await ledger.grant(
        user, role, granted_via=GrantedVia.PRODUCT_PURCHASE, source=product_source(product)
    )

    assert grant.user_id == user.id
    assert grant.sub_role_id == role.id
    assert grant.granted_via == GrantedVia.PRODUCT_PURCHASE
    assert grant.source == SourceRef(SourceKind.PRODUCT, product.id)
    assert grant.granted_by_id is None
    assert grant.is_active


@pytest.mark.asyncio
async def test_grant_is_idempotent(session, make_user, make_sub_role) -> None:
    ledger = GrantLedger(session=session)
    admin = await make_user(UserClassification.ADMIN)
    user = await make_user()
    role = await make_sub_role("mentor")

    first = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL, granted_by=admin)
    second = await ledger.grant(user, role, granted_via="manual")

    assert first.id == second.id
    assert second.granted_by_id == admin.id
    assert await _active_count(session, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_second_source_keeps_first_provenance(
    session, make_user, make_sub_role, make_product
) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("club_pass")
    product = await make_product("Season pass")

    manual = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)
    again = await ledger.grant(
        user, role, granted_via=GrantedVia.PRODUCT_PURCHASE, source=product_source(product)
    )

    assert again.id == manual.id
    assert again.granted_via == GrantedVia.MANUAL
    assert again.source is None


@pytest.mark.asyncio
async def test_revoked_grant_does_not_block_a_new_one(session, make_user, make_sub_role) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("mentor")
    old = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)
    old.revoked_at = utc_now()
    await session.flush()

    assert not await ledger.has_role(user, "mentor")
    new = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)

    assert new.id != old.id
    assert await ledger.has_role(user, "mentor")
    total = await session.scalar(select(func.count()).select_from(UserSubRole))
    assert total == 2


@pytest.mark.asyncio
async def test_grant_converges_when_insert_loses_race(
    session, make_user, make_sub_role, monkeypatch: pytest.MonkeyPatch
) -> None:
    """The pre-insert lookup misses a row another writer already committed."""

    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("mentor")
    winner = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)
    await session.commit()

    original = ledger._find_active
    calls = 0

    async def _stale_find(user_id, sub_role_id):
        nonlocal calls
        calls += 1
        if calls == 1:
            return None
        return await original(user_id, sub_role_id)

    monkeypatch.setattr(ledger, "_find_active", _stale_find)

    result = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)

    assert result.id == winner.id
    assert await _active_count(session, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_savepoint_insert_path_converges(
    session, make_user, make_sub_role, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Non-SQLite backends rely on the unique index raising inside a savepoint."""

    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("mentor")
    winner = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)
    await session.commit()

    original = ledger._find_active
    calls = 0

    async def _stale_find(user_id, sub_role_id):
        nonlocal calls
        calls += 1
        if calls == 1:
            return None
        return await original(user_id, sub_role_id)

    monkeypatch.setattr(ledger, "_dialect_name", lambda: "mssql")
    monkeypatch.setattr(ledger, "_find_active", _stale_find)

    result = await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)

    assert result.id == winner.id
    assert await _active_count(session, user.id, role.id) == 1


@pytest.mark.asyncio
async def test_concurrent_grants_from_separate_engines_converge(tmp_path) -> None:
    """Writers on independent engines race on one SQLite file."""

    url = f"sqlite:///{(tmp_path / 'ledger.sqlite').as_posix()}"
    databases = [Database(), Database()]
    for database in databases:
        database.init(DatabaseConfig(url=url))
    try:
        async with databases[0].engine.begin() as connection:
            await connection.run_sync(metadata.create_all)
        async with databases[0].sessionmaker() as session:
            user = User(email="racer@example.test", classification=UserClassification.CLIENT)
            role = await SubRoleRegistry(session=session).create(
                name="mentor", display_name="Mentor"
            )
            session.add(user)
            await session.commit()
            user_id, role_id = user.id, role.id

        async def worker(database: Database) -> UUID:
            async with database.sessionmaker() as session:
                ledger = GrantLedger(session=session)
                member = await session.get(User, user_id)
                sub_role = await session.get(SubRole, role_id)
                record = await ledger.grant(member, sub_role, granted_via=GrantedVia.MANUAL)
                await session.commit()
                return record.id

        ids = await asyncio.gather(*(worker(database) for database in databases * 2))

        async with databases[0].sessionmaker() as session:
            assert await _active_count(session, user_id, role_id) == 1
        assert len(set(ids)) == 1
    finally:
        for database in databases:
            await database.dispose()


@pytest.mark.asyncio
async def test_grant_logs_creation(
    session, make_user, make_sub_role, caplog: pytest.LogCaptureFixture
) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("mentor")

    with caplog.at_level(logging.INFO, logger="membership_api.features.grants.service"):
        await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)
        await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)

    created = [record for record in caplog.records if record.getMessage() == "grants.grant.created"]
    assert len(created) == 1
    assert created[0].user_id == str(user.id)
    assert created[0].sub_role_id == str(role.id)


@pytest.mark.asyncio
async def test_grant_unknown_sub_role_raises(session, make_user) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    ghost = SubRole(id=uuid4(), name="ghost", display_name="Ghost")

    with pytest.raises(NotFoundError):
        await ledger.grant(user, ghost, granted_via=GrantedVia.MANUAL)


@pytest.mark.asyncio
async def test_grant_rejects_mismatched_provenance(
    session, make_user, make_sub_role, make_product
) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("mentor")
    product = await make_product("Season pass")

    with pytest.raises(InvalidProvenanceError):
        await ledger.grant(
            user, role, granted_via=GrantedVia.INITIATION_COMPLETED, source=product_source(product)
        )
    with pytest.raises(InvalidProvenanceError):
        await ledger.grant(
            user, role, granted_via=GrantedVia.MANUAL, source=product_source(product)
        )
    with pytest.raises(InvalidProvenanceError):
        await ledger.grant(user, role, granted_via=GrantedVia.PRODUCT_PURCHASE)
    with pytest.raises(InvalidProvenanceError):
        await ledger.grant(user, role, granted_via="gift")

    assert await _active_count(session, user.id, role.id) == 0


def test_validate_provenance_accepts_matching_pairs() -> None:
    initiation = Initiation(id=uuid4(), initiation_type="basic")

    assert validate_provenance("manual", None) is GrantedVia.MANUAL
    assert (
        validate_provenance(GrantedVia.INITIATION_COMPLETED, initiation_source(initiation))
        is GrantedVia.INITIATION_COMPLETED
    )


@pytest.mark.asyncio
async def test_role_queries(session, make_user, make_sub_role) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    other = await make_user()
    junior = await make_sub_role("junior", level=1)
    senior = await make_sub_role("senior", level=5)
    await ledger.grant(user, junior, granted_via=GrantedVia.MANUAL)
    await ledger.grant(user, senior, granted_via=GrantedVia.MANUAL)
    await ledger.grant(other, junior, granted_via=GrantedVia.MANUAL)

    assert await ledger.has_role(user, "senior")
    assert not await ledger.has_role(other, "senior")
    assert await ledger.roles_for(user) == frozenset({"junior", "senior"})
    assert await ledger.role_ids_for(other) == frozenset({junior.id})
    grants = await ledger.grants_for(user)
    assert [grant.sub_role.name for grant in grants] == ["senior", "junior"]


@pytest.mark.asyncio
async def test_grants_from_source(session, make_user, make_sub_role, make_product) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user()
    role = await make_sub_role("club_pass")
    product = await make_product("Season pass")
    await ledger.grant(
        user, role, granted_via=GrantedVia.PRODUCT_PURCHASE, source=product_source(product)
    )

    grants = await ledger.grants_from(product_source(product))

    assert [grant.user_id for grant in grants] == [user.id]


@pytest.mark.asyncio
async def test_actor_for_snapshots_held_roles(session, make_user, make_sub_role) -> None:
    ledger = GrantLedger(session=session)
    user = await make_user(UserClassification.SPECIALIST)
    role = await make_sub_role("mentor")
    await ledger.grant(user, role, granted_via=GrantedVia.MANUAL)

    actor = await ledger.actor_for(user)

    assert actor.id == user.id
    assert actor.sub_role_ids == frozenset({role.id})
    assert actor.sub_role_names == frozenset({"mentor"})
    assert actor.can_approve_requests
    assert not actor.is_admin_classified
