from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from atelier.apps.api.main import create_app
from atelier.domain.models import ActivityLog, Group
from atelier.persistence.db import SessionLocal
from atelier.persistence.repos import groups as groups_repo
from atelier.services import activity as activity_service
from atelier.services.cascade import count_orphan_memberships
from atelier.tests.utils.auth import create_test_group, create_test_user


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _group_row(group_id: str) -> Group | None:
    async with SessionLocal() as session:
        return await session.get(Group, group_id)


async def _activity_actions() -> list[str]:
    async with SessionLocal() as session:
        result = await session.execute(select(ActivityLog.action).order_by(ActivityLog.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_owner_delete_removes_group_and_memberships_once() -> None:
    owner_id, owner_headers = await create_test_user()
    manager_id, _ = await create_test_user()
    member_id, _ = await create_test_user()
    group_id = await create_test_group(
        owner_id=owner_id,
        name="Short Lived",
        members={manager_id: "manager", member_id: "member"},
    )

    async with _client() as client:
        first = await client.delete(f"/api/groups/{group_id}", headers=owner_headers)
        second = await client.delete(f"/api/groups/{group_id}", headers=owner_headers)
        members = await client.get(f"/api/groups/{group_id}/members")
    assert first.status_code == 204
    assert first.content == b""
    # The repeat sees a missing resource, not a missing role.
    assert second.status_code == 404
    assert second.json()["error"]["code"] == "NOT_FOUND"
    assert members.status_code == 404

    assert await _group_row(group_id) is None
    async with SessionLocal() as session:
        assert await count_orphan_memberships(session, group_id) == 0
    assert "group_deleted" in await _activity_actions()


@pytest.mark.asyncio
async def test_manager_cannot_delete_group() -> None:
    owner_id, _owner_headers = await create_test_user()
    manager_id, manager_headers = await create_test_user()
    group_id = await create_test_group(
        owner_id=owner_id, name="Kept", members={manager_id: "manager"}
    )

    async with _client() as client:
        response = await client.delete(f"/api/groups/{group_id}", headers=manager_headers)
    assert response.status_code == 403
    assert response.json()["error"] == {"code": "FORBIDDEN", "message": "insufficient resource role"}
    assert await _group_row(group_id) is not None
    async with SessionLocal() as session:
        assert await groups_repo.count_members(session, group_id) == 2


@pytest.mark.asyncio
async def test_platform_admin_is_not_an_owner() -> None:
    owner_id, _owner_headers = await create_test_user()
    _admin_id, admin_headers = await create_test_user(role="admin")
    group_id = await create_test_group(owner_id=owner_id, name="Not Yours")

    async with _client() as client:
        response = await client.delete(f"/api/groups/{group_id}", headers=admin_headers)
    assert response.status_code == 403
    assert await _group_row(group_id) is not None


@pytest.mark.asyncio
async def test_delete_unknown_group_is_not_found() -> None:
    _user_id, headers = await create_test_user()

    async with _client() as client:
        response = await client.delete("/api/groups/missing-group", headers=headers)
        anonymous = await client.delete("/api/groups/missing-group")
    assert response.status_code == 404
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_delete_commits_even_when_activity_store_fails(monkeypatch) -> None:
    owner_id, owner_headers = await create_test_user()
    group_id = await create_test_group(owner_id=owner_id, name="Unlogged")

    async def _failing_writer(entries) -> None:
        raise SQLAlchemyError("activity store unavailable")

    monkeypatch.setattr(activity_service, "write_entries", _failing_writer)

    async with _client() as client:
        response = await client.delete(f"/api/groups/{group_id}", headers=owner_headers)
    assert response.status_code == 204
    assert await _group_row(group_id) is None
    async with SessionLocal() as session:
        assert await count_orphan_memberships(session, group_id) == 0
    assert await _activity_actions() == []
