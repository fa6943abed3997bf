from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from atelier.apps.api.main import create_app
from atelier.domain.models import GroupMember
from atelier.persistence.db import SessionLocal
from atelier.tests.utils.auth import create_test_group, create_test_user


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _member_role(group_id: str, user_id: str) -> str | None:
    async with SessionLocal() as session:
        result = await session.execute(
            select(GroupMember.role).where(
                GroupMember.group_id == group_id, GroupMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_list_groups_second_page_has_remainder() -> None:
    owner_id, _headers = await create_test_user()
    for index in range(25):
        await create_test_group(owner_id=owner_id, name=f"Collective {index:02d}")

    async with _client() as client:
        response = await client.get("/api/groups", params={"page": "2", "limit": "20"})
    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 5
    assert body["pagination"] == {
        "page": 2,
        "limit": 20,
        "total": 25,
        "pages": 2,
        "hasNext": False,
        "hasPrev": True,
    }
    assert all(row["memberCount"] == 1 for row in body["data"])


@pytest.mark.asyncio
async def test_list_groups_malformed_params_fall_back_to_defaults() -> None:
    owner_id, _headers = await create_test_user()
    await create_test_group(owner_id=owner_id, name="Alpha")

    async with _client() as client:
        response = await client.get(
            "/api/groups", params={"page": "abc", "limit": "-5", "sort": "nope", "order": "up"}
        )
    assert response.status_code == 200
    pagination = response.json()["pagination"]
    assert pagination["page"] == 1
    assert pagination["limit"] == 20
    assert pagination["total"] == 1


@pytest.mark.asyncio
async def test_list_groups_page_past_the_end_is_empty() -> None:
    owner_id, _headers = await create_test_user()
    await create_test_group(owner_id=owner_id, name="Lonely")

    async with _client() as client:
        near = await client.get("/api/groups", params={"page": "3"})
        huge = await client.get("/api/groups", params={"page": "99999999999999999999"})
    assert near.status_code == 200
    assert near.json()["data"] == []
    assert huge.status_code == 200
    body = huge.json()
    assert body["data"] == []
    assert body["pagination"]["page"] == 99999999999999999999
    assert body["pagination"]["total"] == 1
    assert body["pagination"]["hasNext"] is False
    assert body["pagination"]["hasPrev"] is True


@pytest.mark.asyncio
async def test_list_groups_search_is_case_insensitive() -> None:
    owner_id, _headers = await create_test_user()
    await create_test_group(owner_id=owner_id, name="Studio One")
    await create_test_group(owner_id=owner_id, name="Light Studio")
    await create_test_group(owner_id=owner_id, name="Print Shop")

    async with _client() as client:
        upper = await client.get("/api/groups", params={"search": "Studio"})
        lower = await client.get("/api/groups", params={"search": "studio"})
        wildcard = await client.get("/api/groups", params={"search": "%"})
    assert upper.json()["pagination"]["total"] == 2
    assert lower.json()["pagination"]["total"] == 2
    assert {row["name"] for row in lower.json()["data"]} == {"Studio One", "Light Studio"}
    # LIKE wildcards in the term match literally.
    assert wildcard.json()["pagination"]["total"] == 0
    assert wildcard.json()["data"] == []


@pytest.mark.asyncio
async def test_list_groups_sorts_by_name() -> None:
    owner_id, _headers = await create_test_user()
    for name in ("Bravo", "Alpha", "Charlie"):
        await create_test_group(owner_id=owner_id, name=name)

    async with _client() as client:
        response = await client.get("/api/groups", params={"sort": "name", "order": "asc"})
    assert [row["name"] for row in response.json()["data"]] == ["Alpha", "Bravo", "Charlie"]


@pytest.mark.asyncio
async def test_create_group_makes_creator_owner() -> None:
    user_id, headers = await create_test_user()

    async with _client() as client:
        created = await client.post("/api/groups", json={"name": "Night Painters"}, headers=headers)
        assert created.status_code == 201
        group = created.json()["data"]
        assert group["slug"] == "night-painters"
        assert group["memberCount"] == 1

        detail = await client.get("/api/groups/night-painters", headers=headers)
        anonymous = await client.get("/api/groups/night-painters")
    assert detail.status_code == 200
    assert detail.json()["data"]["userRole"] == "owner"
    assert [member["userId"] for member in detail.json()["data"]["members"]] == [user_id]
    assert anonymous.json()["data"]["userRole"] is None


@pytest.mark.asyncio
async def test_create_group_with_taken_slug_gets_suffix() -> None:
    _user_id, headers = await create_test_user()

    async with _client() as client:
        first = await client.post("/api/groups", json={"name": "Ink Club"}, headers=headers)
        second = await client.post("/api/groups", json={"name": "ink club"}, headers=headers)
    assert first.json()["data"]["slug"] == "ink-club"
    second_slug = second.json()["data"]["slug"]
    assert second_slug.startswith("ink-club-")
    assert len(second_slug) == len("ink-club-") + 6


@pytest.mark.asyncio
async def test_create_group_requires_authentication() -> None:
    async with _client() as client:
        response = await client.post("/api/groups", json={"name": "Anonymous"})
    assert response.status_code == 401
    assert response.json() == {
        "error": {"code": "UNAUTHENTICATED", "message": "Authentication required"}
    }


@pytest.mark.asyncio
async def test_create_group_rejects_names_without_alphanumerics() -> None:
    _user_id, headers = await create_test_user()

    async with _client() as client:
        symbols = await client.post("/api/groups", json={"name": "!!!"}, headers=headers)
        blank = await client.post("/api/groups", json={"name": "   "}, headers=headers)
    assert symbols.status_code == 400
    assert symbols.json()["error"]["code"] == "VALIDATION_ERROR"
    assert blank.status_code == 400


@pytest.mark.asyncio
async def test_unknown_slug_is_not_found() -> None:
    async with _client() as client:
        response = await client.get("/api/groups/does-not-exist")
    assert response.status_code == 404
    assert response.json()["error"] == {"code": "NOT_FOUND", "message": "Group not found"}


@pytest.mark.asyncio
async def test_update_group_keeps_slug_and_requires_manager() -> None:
    owner_id, _owner_headers = await create_test_user()
    manager_id, manager_headers = await create_test_user()
    member_id, member_headers = await create_test_user()
    group_id = await create_test_group(
        owner_id=owner_id,
        name="Original Name",
        members={manager_id: "manager", member_id: "member"},
    )

    async with _client() as client:
        denied = await client.patch(
            f"/api/groups/{group_id}", json={"name": "Hijacked"}, headers=member_headers
        )
        renamed = await client.patch(
            f"/api/groups/{group_id}", json={"name": "Renamed Collective"}, headers=manager_headers
        )
        slug_change = await client.patch(
            f"/api/groups/{group_id}", json={"slug": "new-slug"}, headers=manager_headers
        )
    assert denied.status_code == 403
    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Renamed Collective"
    assert renamed.json()["data"]["slug"].startswith("original-name-")
    assert slug_change.status_code == 400
    assert slug_change.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_add_member_validates_role_target_and_duplicates() -> None:
    owner_id, owner_headers = await create_test_user()
    target_id, _target_headers = await create_test_user()
    pending_id, _pending_headers = await create_test_user(status="pending")
    group_id = await create_test_group(owner_id=owner_id, name="Guild")

    async with _client() as client:
        added = await client.post(
            f"/api/groups/{group_id}/members",
            json={"userId": target_id, "role": "manager"},
            headers=owner_headers,
        )
        duplicate = await client.post(
            f"/api/groups/{group_id}/members", json={"userId": target_id}, headers=owner_headers
        )
        owner_role = await client.post(
            f"/api/groups/{group_id}/members",
            json={"userId": pending_id, "role": "owner"},
            headers=owner_headers,
        )
        inactive = await client.post(
            f"/api/groups/{group_id}/members", json={"userId": pending_id}, headers=owner_headers
        )
        missing_user = await client.post(
            f"/api/groups/{group_id}/members", json={}, headers=owner_headers
        )
    assert added.status_code == 201
    assert added.json()["data"]["role"] == "manager"
    assert duplicate.status_code == 409
    assert owner_role.status_code == 400
    assert inactive.status_code == 404
    assert missing_user.status_code == 400
    assert await _member_role(group_id, target_id) == "manager"


@pytest.mark.asyncio
async def test_remove_member_protects_owner_and_managers() -> None:
    owner_id, owner_headers = await create_test_user()
    first_manager_id, first_manager_headers = await create_test_user()
    second_manager_id, _second_headers = await create_test_user()
    group_id = await create_test_group(
        owner_id=owner_id,
        name="Atelier Nord",
        members={first_manager_id: "manager", second_manager_id: "manager"},
    )

    async with _client() as client:
        remove_owner = await client.delete(
            f"/api/groups/{group_id}/members/{owner_id}", headers=first_manager_headers
        )
        manager_on_manager = await client.delete(
            f"/api/groups/{group_id}/members/{second_manager_id}", headers=first_manager_headers
        )
        owner_on_manager = await client.delete(
            f"/api/groups/{group_id}/members/{second_manager_id}", headers=owner_headers
        )
        already_gone = await client.delete(
            f"/api/groups/{group_id}/members/{second_manager_id}", headers=owner_headers
        )
    assert remove_owner.status_code == 409
    assert manager_on_manager.status_code == 403
    assert owner_on_manager.status_code == 204
    assert already_gone.status_code == 404
    assert await _member_role(group_id, owner_id) == "owner"
    assert await _member_role(group_id, second_manager_id) is None


@pytest.mark.asyncio
async def test_join_and_leave_group() -> None:
    owner_id, owner_headers = await create_test_user()
    user_id, headers = await create_test_user()
    group_id = await create_test_group(owner_id=owner_id, name="Open Studio")

    async with _client() as client:
        joined = await client.post(f"/api/groups/{group_id}/join", headers=headers)
        joined_again = await client.post(f"/api/groups/{group_id}/join", headers=headers)
        left = await client.post(f"/api/groups/{group_id}/leave", headers=headers)
        left_again = await client.post(f"/api/groups/{group_id}/leave", headers=headers)
        owner_leaves = await client.post(f"/api/groups/{group_id}/leave", headers=owner_headers)
        join_missing = await client.post("/api/groups/no-such-group/join", headers=headers)
    assert joined.status_code == 201
    assert joined.json()["data"]["role"] == "member"
    assert joined_again.status_code == 409
    assert left.status_code == 204
    # Non-members fail the member gate before reaching the service.
    assert left_again.status_code == 403
    assert owner_leaves.status_code == 409
    assert join_missing.status_code == 404
    assert await _member_role(group_id, user_id) is None


@pytest.mark.asyncio
async def test_list_members_orders_by_role_rank() -> None:
    owner_id, _owner_headers = await create_test_user(username="owner")
    manager_id, _ = await create_test_user(username="manager")
    member_id, _ = await create_test_user(username="member")
    group_id = await create_test_group(
        owner_id=owner_id,
        name="Ranked",
        members={member_id: "member", manager_id: "manager"},
    )

    async with _client() as client:
        response = await client.get(f"/api/groups/{group_id}/members")
        missing = await client.get("/api/groups/no-such-group/members")
    assert [row["role"] for row in response.json()["data"]] == ["owner", "manager", "member"]
    assert missing.status_code == 404
