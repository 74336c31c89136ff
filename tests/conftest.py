"""Shared pytest fixtures for membership API tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from membership_api.db import Database, DatabaseConfig, db, metadata
from membership_api.db.migrations import upgrade_database
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.main import create_app
from membership_api.models import (
    Event,
    Product,
    PublicationStatus,
    SubRole,
    User,
    UserClassification,
    WikiPage,
)
from membership_api.settings import Settings, reload_settings

_ENV_VARS = (
    "MEMBERSHIP_DATABASE_URL",
    "MEMBERSHIP_LOGGING_LEVEL",
)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Tests that drive the ASGI app are integration tests; the rest are unit tests."""

    for item in items:
        fixtures = getattr(item, "fixturenames", ())
        if "async_client" in fixtures:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---- Application (file-backed SQLite, migrated with Alembic) ---------------


@pytest.fixture(scope="session")
def _database_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a file-backed SQLite database URL for the test session."""

    db_path = tmp_path_factory.mktemp("membership-db") / "membership.sqlite"
    return f"sqlite:///{db_path.as_posix()}"


@pytest.fixture(scope="session", autouse=True)
def _configure_database(_database_url: str) -> Iterator[Settings]:
    """Apply Alembic migrations against the ephemeral test database."""

    os.environ["MEMBERSHIP_DATABASE_URL"] = _database_url
    os.environ["MEMBERSHIP_LOGGING_LEVEL"] = "WARNING"
    settings = reload_settings()
    upgrade_database(settings)

    yield settings

    for env_var in _ENV_VARS:
        os.environ.pop(env_var, None)
    reload_settings()


@pytest.fixture(scope="session")
def app(_configure_database: Settings) -> FastAPI:
    """Return an application instance for integration-style tests."""

    return create_app(_configure_database)


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Run the lifespan and provide an HTTPX async client bound to the app."""

    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


@pytest_asyncio.fixture()
async def app_session(async_client: AsyncClient) -> AsyncIterator[AsyncSession]:
    """Session on the application's own engine, for arranging API test data."""

    async with db.sessionmaker() as session:
        yield session


@pytest_asyncio.fixture()
async def seed_members(app_session: AsyncSession) -> dict[str, Any]:
    """Create one user per interesting classification and return their ids."""

    registry = SubRoleRegistry(session=app_session)
    suffix = os.urandom(4).hex()
    admin = User(email=f"admin+{suffix}@example.test", classification=UserClassification.ADMIN)
    director = User(
        email=f"director+{suffix}@example.test",
        classification=UserClassification.CENTER_DIRECTOR,
    )
    member = User(email=f"member+{suffix}@example.test", classification=UserClassification.CLIENT)
    outsider = User(
        email=f"outsider+{suffix}@example.test", classification=UserClassification.GUEST
    )
    app_session.add_all([admin, director, member, outsider])
    await app_session.flush()

    trainee = await registry.require_by_name("trainee")
    custom = await registry.create(name=f"vip_{suffix}", display_name="VIP", level=20)
    await app_session.commit()

    return {
        "admin": admin.id,
        "director": director.id,
        "member": member.id,
        "outsider": outsider.id,
        "trainee_role": trainee.id,
        "custom_role": custom.id,
        "custom_role_name": custom.name,
    }


# ---- Services (in-memory SQLite, schema from metadata) ---------------------


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[Database]:
    """Isolated in-memory database per test."""

    database = Database()
    database.init(DatabaseConfig(url="sqlite:///:memory:"))
    async with database.engine.begin() as connection:
        await connection.run_sync(metadata.create_all)
    try:
        yield database
    finally:
        await database.dispose()


@pytest.fixture()
def session_factory(database: Database) -> async_sessionmaker[AsyncSession]:
    return database.sessionmaker


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def make_user(session: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = 0

    async def _make(
        classification: UserClassification = UserClassification.CLIENT,
        *,
        email: str | None = None,
    ) -> User:
        nonlocal counter
        counter += 1
        user = User(
            email=email or f"user{counter}@example.test",
            classification=classification,
        )
        session.add(user)
        await session.flush([user])
        return user

    return _make


@pytest.fixture()
def make_sub_role(session: AsyncSession) -> Callable[..., Awaitable[SubRole]]:
    registry = SubRoleRegistry(session=session)

    async def _make(name: str, *, level: int = 0) -> SubRole:
        return await registry.create(name=name, display_name=name.title(), level=level)

    return _make


@pytest.fixture()
def make_event(session: AsyncSession) -> Callable[..., Awaitable[Event]]:
    async def _make(title: str, *, published: bool = True) -> Event:
        event = Event(title=title)
        if published:
            event.publish()
        session.add(event)
        await session.flush([event])
        return event

    return _make


@pytest.fixture()
def make_wiki_page(session: AsyncSession) -> Callable[..., Awaitable[WikiPage]]:
    async def _make(slug: str, *, published: bool = True) -> WikiPage:
        page = WikiPage(title=slug.replace("-", " ").title(), slug=slug, body="")
        if published:
            page.publish()
        session.add(page)
        await session.flush([page])
        return page

    return _make


@pytest.fixture()
def make_product(session: AsyncSession) -> Callable[..., Awaitable[Product]]:
    async def _make(
        title: str,
        *,
        price: int = 1000,
        auto_grant: list[Any] | None = None,
        status: PublicationStatus = PublicationStatus.PUBLISHED,
    ) -> Product:
        product = Product(
            title=title,
            price=price,
            auto_grant_sub_roles=[str(item) for item in auto_grant or []],
        )
        if status == PublicationStatus.PUBLISHED:
            product.publish()
        else:
            product.status = status
        session.add(product)
        await session.flush([product])
        return product

    return _make
