from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from atelier.apps.api.main import create_app
from atelier.domain.models import Gallery
from atelier.persistence.db import SessionLocal
from atelier.tests.utils.auth import create_test_user


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _create_gallery(*, user_id: str, name: str, status: str = "active") -> str:
    gallery_id = uuid4().hex
    async with SessionLocal() as session:
        session.add(
            Gallery(
                id=gallery_id,
                user_id=user_id,
                slug=name.lower().replace(" ", "-"),
                name=name,
                status=status,
            )
        )
        await session.commit()
    return gallery_id


@pytest.mark.asyncio
async def test_public_listing_hides_drafts_and_suspended_owners() -> None:
    owner_id, _ = await create_test_user(username="painter")
    suspended_id, _ = await create_test_user(status="suspended")
    visible_id = await _create_gallery(user_id=owner_id, name="Harbour Light")
    draft_id = await _create_gallery(user_id=owner_id, name="Unfinished", status="draft")
    await _create_gallery(user_id=suspended_id, name="Hidden Works")

    async with _client() as client:
        listing = await client.get("/api/galleries")
        visible = await client.get(f"/api/galleries/{visible_id}")
        draft = await client.get(f"/api/galleries/{draft_id}")
    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()["data"]] == [visible_id]
    assert listing.json()["pagination"]["total"] == 1
    assert visible.json()["data"]["ownerUsername"] == "painter"
    assert draft.status_code == 404
    assert draft.json()["error"]["message"] == "Gallery not found"


@pytest.mark.asyncio
async def test_empty_listing_reports_zero_pages() -> None:
    async with _client() as client:
        response = await client.get("/api/galleries", params={"page": "3"})
    assert response.json() == {
        "data": [],
        "pagination": {
            "page": 3,
            "limit": 20,
            "total": 0,
            "pages": 0,
            "hasNext": False,
            "hasPrev": False,
        },
    }
