from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from atelier.domain.models import ActivityLog, User
from atelier.persistence.db import SessionLocal
from atelier.services.listing import ListParams, PageMeta, paginate


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password"]
_REDACTED_VALUE = "[REDACTED]"

ACTIVITY_SORT_FIELDS = ("created_at",)


def _is_sensitive_key(key: str) -> bool:
    # Match sensitive key fragments case-insensitively to enforce redaction policy.
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub sensitive fields while preserving safe structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


def get_request_context(request: Request | None) -> dict[str, str | None]:
    # Extract client hints without persisting credentials.
    if request is None:
        return {"ip_address": None, "user_agent": None}
    ip_address = request.client.host if request.client else None
    return {"ip_address": ip_address, "user_agent": request.headers.get("user-agent")}


@dataclass(frozen=True)
class ActivityEntry:
    action: str
    entity_type: str | None
    entity_id: str | None
    user_id: str | None
    metadata: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ActivityWriter = Callable[[Sequence[ActivityEntry]], Awaitable[None]]


async def write_entries(entries: Sequence[ActivityEntry]) -> None:
    # Use a dedicated session so activity writes never share the caller's transaction.
    async with SessionLocal() as session:
        for entry in entries:
            session.add(
                ActivityLog(
                    user_id=entry.user_id,
                    action=entry.action,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    metadata_json=sanitize_metadata(entry.metadata or {}),
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    created_at=entry.occurred_at,
                )
            )
        await session.commit()


class ActivityChannel:
    """Per-request, fire-and-forget outlet for activity records.

    ``emit`` only buffers and never raises. ``flush`` runs after the primary
    work has committed (the API schedules it as a background task) and logs
    and drops entries it cannot store. Activity is advisory; nothing that
    produced an entry is ever rolled back because the entry was lost.
    """

    def __init__(
        self,
        *,
        writer: ActivityWriter | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._writer = writer or write_entries
        self._ip_address = ip_address
        self._user_agent = user_agent
        self._pending: list[ActivityEntry] = []

    @property
    def pending(self) -> tuple[ActivityEntry, ...]:
        return tuple(self._pending)

    def emit(
        self,
        *,
        action: str,
        entity_type: str | None,
        entity_id: str | None,
        user_id: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._pending.append(
            ActivityEntry(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                metadata=metadata,
                ip_address=self._ip_address,
                user_agent=self._user_agent,
            )
        )

    async def flush(self) -> int:
        if not self._pending:
            return 0
        entries, self._pending = self._pending, []
        try:
            await self._writer(entries)
        except (SQLAlchemyError, OSError) as exc:
            # Connection-level failures surface as OSError before SQLAlchemy wraps them.
            logger.warning(
                "activity_write_failed actions=%s count=%d",
                ",".join(entry.action for entry in entries),
                len(entries),
                exc_info=exc,
            )
            return 0
        return len(entries)


def activity_to_dict(row: ActivityLog, username: str | None, email: str | None = None) -> dict[str, Any]:
    return {
        "id": row.id,
        "action": row.action,
        "entityType": row.entity_type,
        "entityId": row.entity_id,
        "userId": row.user_id,
        "username": username,
        "userEmail": email,
        "metadata": row.metadata_json,
        "ipAddress": row.ip_address,
        "userAgent": row.user_agent,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


async def list_activity(
    session: AsyncSession,
    *,
    params: ListParams,
    action: str | None = None,
    user_id: str | None = None,
    occurred_from: datetime | None = None,
    occurred_to: datetime | None = None,
) -> tuple[list[dict[str, Any]], PageMeta]:
    # Outer join keeps entries whose principal has since been deleted.
    stmt = select(ActivityLog, User.username, User.email).outerjoin(User, ActivityLog.user_id == User.id)
    if action:
        stmt = stmt.where(ActivityLog.action == action)
    if user_id:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    if occurred_from:
        stmt = stmt.where(ActivityLog.created_at >= occurred_from)
    if occurred_to:
        stmt = stmt.where(ActivityLog.created_at <= occurred_to)
    rows, meta = await paginate(
        session,
        stmt,
        params=params,
        sort_columns={"created_at": ActivityLog.created_at},
        search_columns=(ActivityLog.action, ActivityLog.entity_type),
        tiebreaker=ActivityLog.id,
    )
    return [activity_to_dict(entry, username, email) for entry, username, email in rows], meta
