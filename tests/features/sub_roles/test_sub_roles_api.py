"""API tests for sub-role administration."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient


pytestmark = pytest.mark.asyncio


def _as(user_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


async def test_list_requires_identity(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/sub-roles")

    assert response.status_code == 401


async def test_unknown_identity_is_rejected(async_client: AsyncClient) -> None:
    unknown = await async_client.get("/api/v1/sub-roles", headers=_as(uuid4()))
    malformed = await async_client.get("/api/v1/sub-roles", headers={"X-User-Id": "nope"})

    assert unknown.status_code == 401
    assert malformed.status_code == 401


async def test_admin_lists_system_roles_in_level_order(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    response = await async_client.get("/api/v1/sub-roles", headers=_as(seed_members["admin"]))

    assert response.status_code == 200, response.text
    payload = response.json()
    levels = [item["level"] for item in payload]
    assert levels == sorted(levels)
    names = {item["name"] for item in payload}
    assert {"guest", "trainee", "admin", seed_members["custom_role_name"]} <= names


async def test_non_admin_cannot_list(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    response = await async_client.get("/api/v1/sub-roles", headers=_as(seed_members["member"]))

    assert response.status_code == 403
    assert response.json() == {"detail": "forbidden"}


async def test_create_update_and_delete_custom_role(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    headers = _as(seed_members["admin"])
    name = f"Mentor_{uuid4().hex[:6]}"

    created = await async_client.post(
        "/api/v1/sub-roles",
        json={"name": name, "display_name": "Mentor", "level": 3},
        headers=headers,
    )
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["name"] == name.lower()
    assert body["system_role"] is False

    duplicate = await async_client.post(
        "/api/v1/sub-roles",
        json={"name": name.lower(), "display_name": "Mentor"},
        headers=headers,
    )
    assert duplicate.status_code == 409

    updated = await async_client.patch(
        f"/api/v1/sub-roles/{body['id']}",
        json={"display_name": "Senior mentor", "level": 4},
        headers=headers,
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["display_name"] == "Senior mentor"

    deleted = await async_client.delete(f"/api/v1/sub-roles/{body['id']}", headers=headers)
    assert deleted.status_code == 204
    missing = await async_client.patch(
        f"/api/v1/sub-roles/{body['id']}", json={"level": 1}, headers=headers
    )
    assert missing.status_code == 404


async def test_create_rejects_invalid_name(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    response = await async_client.post(
        "/api/v1/sub-roles",
        json={"name": "has spaces", "display_name": "Bad"},
        headers=_as(seed_members["admin"]),
    )

    assert response.status_code == 422


async def test_system_role_is_protected(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    trainee = seed_members["trainee_role"]

    as_admin = await async_client.delete(
        f"/api/v1/sub-roles/{trainee}", headers=_as(seed_members["admin"])
    )
    as_member = await async_client.delete(
        f"/api/v1/sub-roles/{trainee}", headers=_as(seed_members["member"])
    )
    edit = await async_client.patch(
        f"/api/v1/sub-roles/{trainee}",
        json={"display_name": "Renamed"},
        headers=_as(seed_members["admin"]),
    )

    assert as_admin.status_code == 409
    assert as_member.status_code == 403
    assert edit.status_code == 409


async def test_held_role_cannot_be_deleted(
    async_client: AsyncClient, seed_members: dict[str, Any]
) -> None:
    custom = seed_members["custom_role"]
    granted = await async_client.post(
        f"/api/v1/users/{seed_members['member']}/sub-roles",
        json={"sub_role_id": str(custom)},
        headers=_as(seed_members["director"]),
    )
    assert granted.status_code == 200, granted.text

    response = await async_client.delete(
        f"/api/v1/sub-roles/{custom}", headers=_as(seed_members["admin"])
    )

    assert response.status_code == 409
    assert "holder" in response.json()["detail"]
