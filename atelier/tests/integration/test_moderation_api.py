from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from atelier.apps.api.main import create_app
from atelier.domain.models import ActivityLog, Message
from atelier.persistence.db import SessionLocal
from atelier.tests.utils.auth import create_test_user


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _create_message(
    sender_id: str,
    *,
    body: str = "hello",
    status: str = "pending_review",
    flagged_reason: str | None = None,
) -> str:
    message_id = uuid4().hex
    async with SessionLocal() as session:
        session.add(
            Message(
                id=message_id,
                sender_id=sender_id,
                body=body,
                status=status,
                flagged_reason=flagged_reason,
            )
        )
        await session.commit()
    return message_id


async def _message(message_id: str) -> Message:
    async with SessionLocal() as session:
        result = await session.execute(select(Message).where(Message.id == message_id))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_review_queue_lists_only_pending_messages() -> None:
    _admin_id, admin_headers = await create_test_user(role="admin")
    sender_id, _ = await create_test_user(username="sender")
    pending = await _create_message(sender_id, body="please review")
    flagged = await _create_message(sender_id, body="suspicious offer", flagged_reason="scam")
    await _create_message(sender_id, status="sent")
    await _create_message(sender_id, status="approved")

    async with _client() as client:
        queue = await client.get("/api/admin/messages", headers=admin_headers)
        flagged_only = await client.get(
            "/api/admin/messages", params={"flaggedOnly": "true"}, headers=admin_headers
        )
        searched = await client.get(
            "/api/admin/messages", params={"search": "OFFER"}, headers=admin_headers
        )
    assert queue.status_code == 200
    assert {row["id"] for row in queue.json()["data"]} == {pending, flagged}
    assert queue.json()["pagination"]["total"] == 2
    assert all(row["senderUsername"] == "sender" for row in queue.json()["data"])
    assert [row["id"] for row in flagged_only.json()["data"]] == [flagged]
    assert flagged_only.json()["data"][0]["flaggedReason"] == "scam"
    assert [row["id"] for row in searched.json()["data"]] == [flagged]


@pytest.mark.asyncio
async def test_approve_then_reject_conflicts() -> None:
    admin_id, admin_headers = await create_test_user(role="admin")
    sender_id, _ = await create_test_user()
    message_id = await _create_message(sender_id)

    async with _client() as client:
        approved = await client.post(f"/api/admin/messages/{message_id}/approve", headers=admin_headers)
        rejected = await client.post(
            f"/api/admin/messages/{message_id}/reject",
            json={"reason": "too late"},
            headers=admin_headers,
        )
        unknown = await client.post("/api/admin/messages/nope/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["reviewedBy"] == admin_id
    assert rejected.status_code == 409
    assert rejected.json()["error"]["code"] == "CONFLICT"
    assert unknown.status_code == 404

    stored = await _message(message_id)
    assert stored.status == "approved"
    assert stored.reviewed_by == admin_id
    assert stored.reviewed_at is not None


@pytest.mark.asyncio
async def test_reject_records_reason_in_activity() -> None:
    admin_id, admin_headers = await create_test_user(role="admin")
    sender_id, _ = await create_test_user()
    message_id = await _create_message(sender_id)

    async with _client() as client:
        too_long = await client.post(
            f"/api/admin/messages/{message_id}/reject",
            json={"reason": "x" * 1001},
            headers=admin_headers,
        )
        rejected = await client.post(
            f"/api/admin/messages/{message_id}/reject",
            json={"reason": "harassment"},
            headers=admin_headers,
        )
    assert too_long.status_code == 400
    assert rejected.status_code == 200
    assert rejected.json()["data"]["reason"] == "harassment"
    assert (await _message(message_id)).status == "rejected"

    async with SessionLocal() as session:
        result = await session.execute(
            select(ActivityLog).where(ActivityLog.entity_id == message_id)
        )
        entries = list(result.scalars())
    assert [entry.action for entry in entries] == ["message_rejected"]
    assert entries[0].user_id == admin_id
    assert entries[0].metadata_json == {"previous_status": "pending_review", "reason": "harassment"}


@pytest.mark.asyncio
async def test_flag_requeues_message_and_requires_reason() -> None:
    _admin_id, admin_headers = await create_test_user(role="admin")
    sender_id, _ = await create_test_user()
    message_id = await _create_message(sender_id, status="approved")

    async with _client() as client:
        missing_reason = await client.post(
            f"/api/admin/messages/{message_id}/flag", headers=admin_headers
        )
        flagged = await client.post(
            f"/api/admin/messages/{message_id}/flag",
            json={"reason": "reported by recipient"},
            headers=admin_headers,
        )
        queue = await client.get(
            "/api/admin/messages", params={"flaggedOnly": "true"}, headers=admin_headers
        )
        unknown = await client.post(
            "/api/admin/messages/nope/flag", json={"reason": "x"}, headers=admin_headers
        )
    assert missing_reason.status_code == 400
    assert flagged.status_code == 200
    assert flagged.json()["data"] == {
        "id": message_id,
        "status": "pending_review",
        "flagged": True,
        "reason": "reported by recipient",
    }
    assert [row["id"] for row in queue.json()["data"]] == [message_id]
    assert unknown.status_code == 404

    stored = await _message(message_id)
    assert stored.reviewed_by is None
    assert stored.flagged_reason == "reported by recipient"


@pytest.mark.asyncio
async def test_moderation_requires_admin() -> None:
    sender_id, headers = await create_test_user()
    message_id = await _create_message(sender_id)

    async with _client() as client:
        listing = await client.get("/api/admin/messages", headers=headers)
        approve = await client.post(f"/api/admin/messages/{message_id}/approve", headers=headers)
    assert listing.status_code == 403
    assert approve.status_code == 403
    assert (await _message(message_id)).status == "pending_review"
