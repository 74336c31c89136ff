"""API tests for reading and manually granting sub-roles."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient


pytestmark = pytest.mark.asyncio


def _as(user_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


async def test_manual_grant_is_idempotent(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    url = f"/api/v1/users/{seed_members['member']}/sub-roles"
    payload = {"sub_role_id": str(seed_members["trainee_role"])}
    headers = _as(seed_members["director"])

    first = await async_client.post(url, json=payload, headers=headers)
    second = await async_client.post(url, json=payload, headers=headers)

    assert first.status_code == 200, first.text
    assert second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    body = first.json()
    assert body["granted_via"] == "manual"
    assert body["source_type"] is None
    assert body["granted_by_id"] == str(seed_members["director"])
    assert body["sub_role"]["name"] == "trainee"

    listing = await async_client.get(url, headers=_as(seed_members["member"]))
    assert listing.status_code == 200
    assert [item["sub_role"]["name"] for item in listing.json()] == ["trainee"]


async def test_grant_requires_approver(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    response = await async_client.post(
        f"/api/v1/users/{seed_members['outsider']}/sub-roles",
        json={"sub_role_id": str(seed_members["trainee_role"])},
        headers=_as(seed_members["member"]),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "forbidden"}


async def test_grant_unknown_role_or_user(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    headers = _as(seed_members["admin"])

    unknown_role = await async_client.post(
        f"/api/v1/users/{seed_members['member']}/sub-roles",
        json={"sub_role_id": str(uuid4())},
        headers=headers,
    )
    unknown_user = await async_client.post(
        f"/api/v1/users/{uuid4()}/sub-roles",
        json={"sub_role_id": str(seed_members["trainee_role"])},
        headers=headers,
    )

    assert unknown_role.status_code == 404
    assert unknown_user.status_code == 404


async def test_members_cannot_read_other_members_grants(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    response = await async_client.get(
        f"/api/v1/users/{seed_members['member']}/sub-roles",
        headers=_as(seed_members["outsider"]),
    )
    as_admin = await async_client.get(
        f"/api/v1/users/{seed_members['member']}/sub-roles",
        headers=_as(seed_members["admin"]),
    )

    assert response.status_code == 403
    assert as_admin.status_code == 200
