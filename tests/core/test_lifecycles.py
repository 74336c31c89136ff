"""Application lifespan wiring."""

from __future__ import annotations

from uuid import uuid4

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from membership_api.db import db
from membership_api.features.grants.service import GrantLedger
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.main import create_app
from membership_api.models import OrderRequest, Product, User, UserClassification
from membership_api.settings import Settings


pytestmark = pytest.mark.asyncio


async def test_enabled_auto_grant_subscribes_a_queue(_configure_database: Settings) -> None:
    app = create_app(_configure_database)

    async with LifespanManager(app):
        assert app.state.task_queue is not None

    assert app.state.task_queue is None


async def test_disabled_auto_grant_runs_without_a_queue(_configure_database: Settings) -> None:
    settings = _configure_database.model_copy(update={"auto_grant_enabled": False})
    app = create_app(settings)

    async with LifespanManager(app):
        assert app.state.task_queue is None

        suffix = uuid4().hex[:8]
        async with db.sessionmaker() as session:
            director = User(
                email=f"director+{suffix}@example.test",
                classification=UserClassification.CENTER_DIRECTOR,
            )
            member = User(
                email=f"member+{suffix}@example.test", classification=UserClassification.CLIENT
            )
            session.add_all([director, member])
            await session.flush()
            trainee = await SubRoleRegistry(session=session).require_by_name("trainee")
            product = Product(
                title=f"Course {suffix}", price=100, auto_grant_sub_roles=[str(trainee.id)]
            )
            product.publish()
            session.add(product)
            await session.flush()
            order = OrderRequest(user_id=member.id, product_id=product.id, total_price=100)
            session.add(order)
            await session.commit()
            director_id, member_id, order_id = director.id, member.id, order.id

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            approved = await client.post(
                f"/api/v1/order-requests/{order_id}/approve",
                headers={"X-User-Id": str(director_id)},
            )

        assert approved.status_code == 200, approved.text
        async with db.sessionmaker() as session:
            member = await session.get(User, member_id)
            assert await GrantLedger(session=session).grants_for(member) == []
