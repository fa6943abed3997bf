from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from atelier.domain.models import ActivityLog, Artwork, Gallery, Message, User
from atelier.domain.roles import ARTWORK_STATUSES, GALLERY_STATUSES, MESSAGE_STATUSES, USER_STATUSES


DEFAULT_ACTIVITY_LIMIT = 10


@dataclass(frozen=True)
class CollectionSpec:
    # Names a collection, the column it is grouped by, and every status it can hold.
    name: str
    status_column: ColumnElement[Any]
    statuses: tuple[str, ...]


@dataclass(frozen=True)
class CollectionCounts:
    total: int
    by_status: dict[str, int]

    def as_dict(self) -> dict[str, int]:
        return {"total": self.total, **self.by_status}


@dataclass(frozen=True)
class ActivityView:
    action: str
    entity_type: str | None
    entity_id: str | None
    user_id: str | None
    username: str | None
    created_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "userId": self.user_id,
            "username": self.username,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class StatsSnapshot:
    collections: dict[str, CollectionCounts]
    recent_activity: list[ActivityView]
    generated_at: datetime

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            name: counts.as_dict() for name, counts in self.collections.items()
        }
        payload["recentActivity"] = [item.as_dict() for item in self.recent_activity]
        payload["generatedAt"] = self.generated_at.isoformat()
        return payload


DEFAULT_COLLECTIONS: tuple[CollectionSpec, ...] = (
    CollectionSpec(name="users", status_column=User.status, statuses=USER_STATUSES),
    CollectionSpec(name="galleries", status_column=Gallery.status, statuses=GALLERY_STATUSES),
    CollectionSpec(name="artworks", status_column=Artwork.status, statuses=ARTWORK_STATUSES),
    CollectionSpec(name="messages", status_column=Message.status, statuses=MESSAGE_STATUSES),
)


def merge_status_counts(collection: CollectionSpec, rows: Sequence[tuple[str | None, int]]) -> CollectionCounts:
    # Seed every known status with zero so absent statuses still appear in the snapshot.
    by_status = {status: 0 for status in collection.statuses}
    for status, count in rows:
        # Statuses outside the enum keep their own key so the counts still sum to the total.
        key = status if status is not None else "unknown"
        by_status[key] = by_status.get(key, 0) + int(count)
    return CollectionCounts(total=sum(by_status.values()), by_status=by_status)


async def count_by_status(session: AsyncSession, collection: CollectionSpec) -> CollectionCounts:
    column = collection.status_column
    result = await session.execute(select(column, func.count()).group_by(column))
    return merge_status_counts(collection, [(status, count) for status, count in result.all()])


async def recent_activity(session: AsyncSession, *, limit: int = DEFAULT_ACTIVITY_LIMIT) -> list[ActivityView]:
    # Left join so activity by deleted principals survives with a null username.
    result = await session.execute(
        select(ActivityLog, User.username)
        .outerjoin(User, ActivityLog.user_id == User.id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(max(0, limit))
    )
    return [
        ActivityView(
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            user_id=entry.user_id,
            username=username,
            created_at=entry.created_at,
        )
        for entry, username in result.all()
    ]


async def aggregate(
    session: AsyncSession,
    collections: Sequence[CollectionSpec] = DEFAULT_COLLECTIONS,
    *,
    activity_limit: int = DEFAULT_ACTIVITY_LIMIT,
    now: datetime | None = None,
) -> StatsSnapshot:
    """Build a point-in-time dashboard snapshot.

    Each collection is counted by its own query; the counts are not taken in
    one transaction because no invariant spans collections.
    """
    generated_at = now or datetime.now(timezone.utc)
    counts: dict[str, CollectionCounts] = {}
    for collection in collections:
        counts[collection.name] = await count_by_status(session, collection)
    activity = await recent_activity(session, limit=activity_limit)
    return StatsSnapshot(collections=counts, recent_activity=activity, generated_at=generated_at)
