from __future__ import annotations

import logging
import re
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationFailedError,
)
from atelier.domain.models import Group, GroupMember, User
from atelier.domain.roles import ASSIGNABLE_ROLES, ResourceRole, parse_resource_role
from atelier.persistence.repos import groups as groups_repo
from atelier.persistence.repos import users as users_repo
from atelier.services.activity import ActivityChannel
from atelier.services.authz.access import Principal
from atelier.services.listing import ListParams, PageMeta, paginate


logger = logging.getLogger(__name__)

GROUP_SORT_FIELDS = ("created_at", "updated_at", "name")
NAME_MAX_LENGTH = 100

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _SLUG_INVALID.sub("-", name.strip().lower()).strip("-")


def validate_group_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationFailedError("Group name must be a non-empty string")
    name = name.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationFailedError(f"Group name must be {NAME_MAX_LENGTH} characters or less")
    if not slugify(name):
        raise ValidationFailedError("Group name must contain alphanumeric characters")
    return name


def group_to_dict(group: Group) -> dict[str, Any]:
    return {
        "id": group.id,
        "slug": group.slug,
        "name": group.name,
        "website": group.website,
        "email": group.email,
        "createdBy": group.created_by,
        "createdAt": group.created_at.isoformat() if group.created_at else None,
        "updatedAt": group.updated_at.isoformat() if group.updated_at else None,
    }


def member_to_dict(member: GroupMember, user: User) -> dict[str, Any]:
    return {
        "userId": member.user_id,
        "username": user.username,
        "displayName": user.display_name,
        "role": member.role,
        "joinedAt": member.joined_at.isoformat() if member.joined_at else None,
    }


def _store_failure(operation: str, *, group_id: str | None, principal_id: str | None, exc: Exception) -> InternalError:
    # Keep store details in the log and hand callers a generic failure.
    logger.error(
        "group_operation_failed operation=%s group_id=%s principal_id=%s",
        operation,
        group_id,
        principal_id,
        exc_info=exc,
    )
    return InternalError()


async def _unique_slug(session: AsyncSession, base: str) -> str:
    if not await groups_repo.slug_taken(session, base):
        return base
    return f"{base}-{uuid4().hex[:6]}"


async def create_group(
    session: AsyncSession,
    *,
    actor: Principal,
    name: Any,
    website: str | None = None,
    email: str | None = None,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    # The group and its owner membership commit together or not at all.
    resolved_name = validate_group_name(name)
    group_id = uuid4().hex
    try:
        slug = await _unique_slug(session, slugify(resolved_name))
        group = Group(
            id=group_id,
            slug=slug,
            name=resolved_name,
            website=website or None,
            email=email or None,
            created_by=actor.user_id,
        )
        session.add(group)
        await session.flush()
        session.add(
            GroupMember(group_id=group_id, user_id=actor.user_id, role=ResourceRole.OWNER.value)
        )
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("A group with this slug already exists") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("create_group", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None:
        activity.emit(
            action="group_created",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
            metadata={"slug": group.slug},
        )
    return {**group_to_dict(group), "memberCount": 1}


async def list_groups(session: AsyncSession, *, params: ListParams) -> tuple[list[dict[str, Any]], PageMeta]:
    stmt = select(Group, groups_repo.member_count_column())
    try:
        rows, meta = await paginate(
            session,
            stmt,
            params=params,
            sort_columns={
                "created_at": Group.created_at,
                "updated_at": Group.updated_at,
                "name": Group.name,
            },
            search_columns=(Group.name,),
            tiebreaker=Group.id,
        )
    except SQLAlchemyError as exc:
        raise _store_failure("list_groups", group_id=None, principal_id=None, exc=exc) from exc
    return [{**group_to_dict(group), "memberCount": int(count or 0)} for group, count in rows], meta


async def get_group_by_slug(
    session: AsyncSession,
    *,
    slug: str,
    viewer: Principal | None = None,
) -> dict[str, Any]:
    try:
        group = await groups_repo.get_group_by_slug(session, slug)
        if group is None:
            raise NotFoundError.for_entity("Group")
        members = await groups_repo.list_members(session, group.id)
    except SQLAlchemyError as exc:
        raise _store_failure(
            "get_group",
            group_id=None,
            principal_id=viewer.user_id if viewer else None,
            exc=exc,
        ) from exc
    member_rows = [member_to_dict(member, user) for member, user in members]
    viewer_role = None
    if viewer is not None:
        viewer_role = next(
            (row["role"] for row in member_rows if row["userId"] == viewer.user_id),
            None,
        )
    return {
        **group_to_dict(group),
        "members": member_rows,
        "memberCount": len(member_rows),
        "userRole": viewer_role,
    }


async def update_group(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    fields: dict[str, Any],
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    # The slug is fixed at creation; renaming a group never changes its public handle.
    changed: list[str] = []
    try:
        group = await groups_repo.get_group(session, group_id, for_update=True)
        if group is None:
            raise NotFoundError.for_entity("Group")
        if "name" in fields:
            group.name = validate_group_name(fields["name"])
            changed.append("name")
        for key in ("website", "email"):
            if key in fields:
                setattr(group, key, fields[key] or None)
                changed.append(key)
        await session.commit()
    except (NotFoundError, ValidationFailedError):
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("update_group", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None and changed:
        activity.emit(
            action="group_updated",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
            metadata={"changed_fields": changed},
        )
    return group_to_dict(group)


async def list_members(session: AsyncSession, *, group_id: str) -> list[dict[str, Any]]:
    try:
        if not await groups_repo.group_exists(session, group_id):
            raise NotFoundError.for_entity("Group")
        members = await groups_repo.list_members(session, group_id)
    except SQLAlchemyError as exc:
        raise _store_failure("list_members", group_id=group_id, principal_id=None, exc=exc) from exc
    return [member_to_dict(member, user) for member, user in members]


async def add_member(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    user_id: Any,
    role: Any = ResourceRole.MEMBER.value,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationFailedError("userId is required")
    try:
        resolved_role = parse_resource_role(role if isinstance(role, str) else None) or ResourceRole.MEMBER
    except ValueError as exc:
        raise ValidationFailedError('role must be "member" or "manager"') from exc
    if resolved_role not in ASSIGNABLE_ROLES:
        raise ValidationFailedError('role must be "member" or "manager"')

    try:
        target = await users_repo.get_active_user(session, user_id)
        if target is None:
            raise NotFoundError.for_entity("User")
        if await groups_repo.get_membership(session, group_id, user_id) is not None:
            raise ConflictError("User is already a member of this group")
        member = GroupMember(group_id=group_id, user_id=user_id, role=resolved_role.value)
        session.add(member)
        await session.commit()
    except (NotFoundError, ConflictError):
        await session.rollback()
        raise
    except IntegrityError as exc:
        # Lost a race with a concurrent add of the same user.
        await session.rollback()
        raise ConflictError("User is already a member of this group") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("add_member", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None:
        activity.emit(
            action="group_member_added",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
            metadata={"member_id": user_id, "role": resolved_role.value},
        )
    return member_to_dict(member, target)


async def remove_member(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    actor_role: ResourceRole,
    user_id: str,
    activity: ActivityChannel | None = None,
) -> None:
    try:
        membership = await groups_repo.get_membership(session, group_id, user_id)
        if membership is None:
            raise NotFoundError.for_entity("Member")
        target_role = parse_resource_role(membership.role)
        if target_role is ResourceRole.OWNER:
            raise ConflictError("Cannot remove the group owner; transfer ownership first")
        if (
            target_role is ResourceRole.MANAGER
            and user_id != actor.user_id
            and actor_role < ResourceRole.OWNER
        ):
            raise ForbiddenError("Only the owner can remove a manager")
        await groups_repo.delete_membership(session, group_id, user_id)
        await session.commit()
    except (NotFoundError, ConflictError, ForbiddenError):
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("remove_member", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None:
        activity.emit(
            action="group_member_removed",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
            metadata={"member_id": user_id, "role": membership.role},
        )


async def join_group(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    try:
        if not await groups_repo.group_exists(session, group_id):
            raise NotFoundError.for_entity("Group")
        if await groups_repo.get_membership(session, group_id, actor.user_id) is not None:
            raise ConflictError("You are already a member of this group")
        member = GroupMember(group_id=group_id, user_id=actor.user_id, role=ResourceRole.MEMBER.value)
        session.add(member)
        await session.commit()
        user = await users_repo.get_user(session, actor.user_id)
    except (NotFoundError, ConflictError):
        await session.rollback()
        raise
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("You are already a member of this group") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("join_group", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None:
        activity.emit(
            action="group_joined",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
        )
    return member_to_dict(member, user)


async def leave_group(
    session: AsyncSession,
    *,
    group_id: str,
    actor: Principal,
    activity: ActivityChannel | None = None,
) -> None:
    # Ownership only moves through an explicit transfer, so the owner can never just leave.
    try:
        membership = await groups_repo.get_membership(session, group_id, actor.user_id)
        if membership is None:
            raise ConflictError("You are not a member of this group")
        if parse_resource_role(membership.role) is ResourceRole.OWNER:
            raise ConflictError("Cannot leave as the owner; transfer ownership first")
        await groups_repo.delete_membership(session, group_id, actor.user_id)
        await session.commit()
    except ConflictError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        raise _store_failure("leave_group", group_id=group_id, principal_id=actor.user_id, exc=exc) from exc

    if activity is not None:
        activity.emit(
            action="group_left",
            entity_type="group",
            entity_id=group_id,
            user_id=actor.user_id,
        )
