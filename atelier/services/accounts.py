from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.errors import ConflictError, InternalError, NotFoundError, ValidationFailedError
from atelier.domain.models import User
from atelier.domain.roles import USER_STATUSES, AccountStatus
from atelier.persistence.repos import users as users_repo
from atelier.services.activity import ActivityChannel
from atelier.services.authz.access import Principal
from atelier.services.listing import ListParams, PageMeta, paginate


logger = logging.getLogger(__name__)

USER_SORT_FIELDS = ("created_at", "updated_at", "username")
REASON_MAX_LENGTH = 1000


def validate_reason(reason: Any) -> str | None:
    # Reasons are optional but, when present, must be a bounded non-blank string.
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationFailedError("reason must be a string")
    trimmed = reason.strip()
    if not trimmed or len(trimmed) > REASON_MAX_LENGTH:
        raise ValidationFailedError(f"reason must be between 1 and {REASON_MAX_LENGTH} characters")
    return trimmed


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "displayName": user.display_name,
        "status": user.status,
        "role": user.role,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
        "lastLoginAt": user.last_login_at.isoformat() if user.last_login_at else None,
    }


async def list_users(
    session: AsyncSession,
    *,
    params: ListParams,
    status: str | None = None,
) -> tuple[list[dict[str, Any]], PageMeta]:
    stmt = select(User)
    if status:
        if status not in USER_STATUSES:
            raise ValidationFailedError(f"Invalid status: must be one of {', '.join(USER_STATUSES)}")
        stmt = stmt.where(User.status == status)
    try:
        rows, meta = await paginate(
            session,
            stmt,
            params=params,
            sort_columns={
                "created_at": User.created_at,
                "updated_at": User.updated_at,
                "username": User.username,
            },
            search_columns=(User.username, User.email),
            tiebreaker=User.id,
        )
    except SQLAlchemyError as exc:
        logger.error("user_list_failed operation=list_users", exc_info=exc)
        raise InternalError() from exc
    return [user_to_dict(user) for (user,) in rows], meta


async def _transition(
    session: AsyncSession,
    *,
    user_id: str,
    target: AccountStatus,
    actor: Principal,
    reason: Any,
    action: str,
    activity: ActivityChannel | None,
) -> dict[str, Any]:
    resolved_reason = validate_reason(reason)
    try:
        user = await users_repo.get_user(session, user_id)
        if user is None:
            raise NotFoundError.for_entity("User")
        previous_status = user.status
        if previous_status == target.value:
            raise ConflictError(f"User is already {target.value}")
        user.status = target.value
        await session.commit()
    except (NotFoundError, ConflictError):
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "account_status_failed operation=%s user_id=%s principal_id=%s",
            action,
            user_id,
            actor.user_id,
            exc_info=exc,
        )
        raise InternalError() from exc

    if activity is not None:
        activity.emit(
            action=action,
            entity_type="user",
            entity_id=user_id,
            user_id=actor.user_id,
            metadata={"reason": resolved_reason, "previous_status": previous_status},
        )
    return {
        **user_to_dict(user),
        "previousStatus": previous_status,
        "changedBy": actor.user_id,
        "reason": resolved_reason,
    }


async def suspend_account(
    session: AsyncSession,
    *,
    user_id: str,
    actor: Principal,
    reason: Any = None,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    if user_id == actor.user_id:
        raise ValidationFailedError("Cannot suspend your own account")
    return await _transition(
        session,
        user_id=user_id,
        target=AccountStatus.SUSPENDED,
        actor=actor,
        reason=reason,
        action="user_suspended",
        activity=activity,
    )


async def activate_account(
    session: AsyncSession,
    *,
    user_id: str,
    actor: Principal,
    reason: Any = None,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    return await _transition(
        session,
        user_id=user_id,
        target=AccountStatus.ACTIVE,
        actor=actor,
        reason=reason,
        action="user_activated",
        activity=activity,
    )
