from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.models import ApiKey, User


async def get_user(session: AsyncSession, user_id: str) -> User | None:
    return await session.get(User, user_id)


async def get_active_user(session: AsyncSession, user_id: str) -> User | None:
    result = await session.execute(
        select(User).where(User.id == user_id, User.status == "active")
    )
    return result.scalar_one_or_none()


async def get_user_by_key_hash(session: AsyncSession, key_hash: str) -> tuple[ApiKey, User] | None:
    # Revoked keys are filtered here so callers only ever see usable credentials.
    result = await session.execute(
        select(ApiKey, User)
        .join(User, ApiKey.user_id == User.id)
        .where(ApiKey.key_hash == key_hash, ApiKey.revoked_at.is_(None))
    )
    row = result.first()
    if row is None:
        return None
    api_key, user = row
    return api_key, user
