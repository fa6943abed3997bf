from __future__ import annotations

from dataclasses import dataclass
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.errors import ConflictError, InternalError, NotFoundError
from atelier.domain.models import GroupMember
from atelier.persistence.repos import groups as groups_repo
from atelier.services.activity import ActivityChannel
from atelier.services.authz.access import Principal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeResult:
    group_id: str
    slug: str
    memberships_removed: int


async def delete_group(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    activity: ActivityChannel | None = None,
) -> CascadeResult:
    """Delete a group and every membership that exists only in its context.

    Existence is checked before any mutation so a repeated delete reports
    ``NotFoundError`` rather than a second success. Both deletions commit in
    one transaction; the FK's ON DELETE CASCADE backs up the explicit
    membership delete. Authorization is the caller's guard chain.
    """
    try:
        group = await groups_repo.get_group(session, group_id, for_update=True)
        if group is None:
            raise NotFoundError.for_entity("Group")
        slug = group.slug
        removed = await groups_repo.delete_memberships(session, group_id)
        deleted = await groups_repo.delete_group_row(session, group_id)
        if deleted != 1:
            # A concurrent delete won between the existence check and ours.
            raise NotFoundError.for_entity("Group")
        await session.commit()
    except NotFoundError:
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        logger.info(
            "group_delete_conflict group_id=%s principal_id=%s",
            group_id,
            actor.user_id,
        )
        raise ConflictError("Group cannot be deleted while other records reference it") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "group_delete_failed group_id=%s principal_id=%s operation=delete_group",
            group_id,
            actor.user_id,
            exc_info=exc,
        )
        raise InternalError() from exc

    # Expunge the deleted instance so later reads in this session cannot resurrect it.
    session.expunge_all()

    if activity is not None:
        activity.emit(
            action="group_deleted",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
            metadata={"slug": slug, "memberships_removed": removed},
        )
    return CascadeResult(group_id=group_id, slug=slug, memberships_removed=removed)


async def count_orphan_memberships(session: AsyncSession, group_id: str) -> int:
    # Memberships still pointing at a group id; zero once the group is deleted.
    result = await session.execute(
        select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
    )
    return int(result.scalar_one() or 0)
