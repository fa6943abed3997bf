from __future__ import annotations

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.models import Group, GroupMember, User


async def get_group(session: AsyncSession, group_id: str, *, for_update: bool = False) -> Group | None:
    stmt = select(Group).where(Group.id == group_id)
    if for_update:
        # Serialize concurrent mutations of the same aggregate root; ignored by SQLite.
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_group_by_slug(session: AsyncSession, slug: str) -> Group | None:
    result = await session.execute(select(Group).where(Group.slug == slug))
    return result.scalar_one_or_none()


async def group_exists(session: AsyncSession, group_id: str) -> bool:
    result = await session.execute(select(Group.id).where(Group.id == group_id))
    return result.scalar_one_or_none() is not None


async def slug_taken(session: AsyncSession, slug: str) -> bool:
    result = await session.execute(select(Group.id).where(Group.slug == slug))
    return result.scalar_one_or_none() is not None


async def get_member_role(session: AsyncSession, group_id: str, user_id: str) -> str | None:
    # Absence means "not a participant", which is distinct from the member role.
    result = await session.execute(
        select(GroupMember.role).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_membership(session: AsyncSession, group_id: str, user_id: str) -> GroupMember | None:
    return await session.get(GroupMember, (group_id, user_id))


def role_rank_order():
    # Owners first, then managers, then members; ties broken by join time at the call site.
    return case(
        (GroupMember.role == "owner", 1),
        (GroupMember.role == "manager", 2),
        else_=3,
    )


async def list_members(session: AsyncSession, group_id: str) -> list[tuple[GroupMember, User]]:
    result = await session.execute(
        select(GroupMember, User)
        .join(User, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(role_rank_order(), GroupMember.joined_at.asc(), GroupMember.user_id.asc())
    )
    return [(member, user) for member, user in result.all()]


def member_count_column():
    # Correlated count so list rows carry their member totals in one round trip.
    return (
        select(func.count())
        .select_from(GroupMember)
        .where(GroupMember.group_id == Group.id)
        .correlate(Group)
        .scalar_subquery()
        .label("member_count")
    )


async def count_members(session: AsyncSession, group_id: str) -> int:
    result = await session.execute(
        select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
    )
    return int(result.scalar_one() or 0)


async def delete_memberships(session: AsyncSession, group_id: str) -> int:
    result = await session.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
    return int(result.rowcount or 0)


async def delete_membership(session: AsyncSession, group_id: str, user_id: str) -> int:
    result = await session.execute(
        delete(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )
    return int(result.rowcount or 0)


async def delete_group_row(session: AsyncSession, group_id: str) -> int:
    result = await session.execute(delete(Group).where(Group.id == group_id))
    return int(result.rowcount or 0)
