from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from atelier.core.errors import ConflictError, InternalError, NotFoundError, ValidationFailedError
from atelier.domain.models import Message, User
from atelier.services.accounts import validate_reason
from atelier.services.activity import ActivityChannel
from atelier.services.authz.access import Principal
from atelier.services.listing import ListParams, PageMeta, paginate


logger = logging.getLogger(__name__)

MESSAGE_SORT_FIELDS = ("created_at",)
PENDING_REVIEW = "pending_review"


def message_to_dict(
    message: Message,
    sender_username: str | None,
    recipient_username: str | None,
) -> dict[str, Any]:
    return {
        "id": message.id,
        "senderUserId": message.sender_id,
        "senderUsername": sender_username,
        "recipientUserId": message.recipient_id,
        "recipientUsername": recipient_username,
        "body": message.body,
        "status": message.status,
        "flaggedReason": message.flagged_reason,
        "reviewedBy": message.reviewed_by,
        "reviewedAt": message.reviewed_at.isoformat() if message.reviewed_at else None,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


async def list_review_queue(
    session: AsyncSession,
    *,
    params: ListParams,
    flagged_only: bool = False,
) -> tuple[list[dict[str, Any]], PageMeta]:
    """Page through messages waiting for a moderation decision."""
    sender = aliased(User)
    recipient = aliased(User)
    stmt = (
        select(
            Message,
            sender.username.label("sender_username"),
            recipient.username.label("recipient_username"),
        )
        .outerjoin(sender, Message.sender_id == sender.id)
        .outerjoin(recipient, Message.recipient_id == recipient.id)
        .where(Message.status == PENDING_REVIEW)
    )
    if flagged_only:
        stmt = stmt.where(Message.flagged_reason.is_not(None))
    try:
        rows, meta = await paginate(
            session,
            stmt,
            params=params,
            sort_columns={"created_at": Message.created_at},
            search_columns=(Message.body,),
            tiebreaker=Message.id,
        )
    except SQLAlchemyError as exc:
        logger.error("review_queue_failed operation=list_review_queue", exc_info=exc)
        raise InternalError() from exc
    return [message_to_dict(message, sent_by, received_by) for message, sent_by, received_by in rows], meta


async def _review(
    session: AsyncSession,
    *,
    message_id: str,
    target: str,
    actor: Principal,
    reason: Any,
    action: str,
    activity: ActivityChannel | None,
) -> dict[str, Any]:
    resolved_reason = validate_reason(reason)
    reviewed_at = datetime.now(timezone.utc)
    try:
        message = await session.get(Message, message_id)
        if message is None:
            raise NotFoundError.for_entity("Message")
        if message.status != PENDING_REVIEW:
            raise ConflictError(f"Message is not pending review (status: {message.status})")
        message.status = target
        message.reviewed_by = actor.user_id
        message.reviewed_at = reviewed_at
        await session.commit()
    except (NotFoundError, ConflictError):
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "message_review_failed operation=%s message_id=%s principal_id=%s",
            action,
            message_id,
            actor.user_id,
            exc_info=exc,
        )
        raise InternalError() from exc

    if activity is not None:
        activity.emit(
            action=action,
            entity_type="message",
            entity_id=message_id,
            user_id=actor.user_id,
            metadata={"previous_status": PENDING_REVIEW, "reason": resolved_reason},
        )
    return {
        "id": message_id,
        "status": target,
        "reviewedBy": actor.user_id,
        "reviewedAt": reviewed_at.isoformat(),
        "reason": resolved_reason,
    }


async def approve_message(
    session: AsyncSession,
    *,
    message_id: str,
    actor: Principal,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    return await _review(
        session,
        message_id=message_id,
        target="approved",
        actor=actor,
        reason=None,
        action="message_approved",
        activity=activity,
    )


async def reject_message(
    session: AsyncSession,
    *,
    message_id: str,
    actor: Principal,
    reason: Any = None,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    return await _review(
        session,
        message_id=message_id,
        target="rejected",
        actor=actor,
        reason=reason,
        action="message_rejected",
        activity=activity,
    )


async def flag_message(
    session: AsyncSession,
    *,
    message_id: str,
    actor: Principal,
    reason: Any,
    activity: ActivityChannel | None = None,
) -> dict[str, Any]:
    # Flagging (re)queues the message; an earlier decision is cleared.
    resolved_reason = validate_reason(reason)
    if resolved_reason is None:
        raise ValidationFailedError("reason is required")
    try:
        message = await session.get(Message, message_id)
        if message is None:
            raise NotFoundError.for_entity("Message")
        previous_status = message.status
        message.flagged_reason = resolved_reason
        message.status = PENDING_REVIEW
        message.reviewed_by = None
        message.reviewed_at = None
        await session.commit()
    except NotFoundError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "message_flag_failed message_id=%s principal_id=%s",
            message_id,
            actor.user_id,
            exc_info=exc,
        )
        raise InternalError() from exc

    if activity is not None:
        activity.emit(
            action="message_flagged",
            entity_type="message",
            entity_id=message_id,
            user_id=actor.user_id,
            metadata={"previous_status": previous_status, "reason": resolved_reason},
        )
    return {"id": message_id, "status": PENDING_REVIEW, "flagged": True, "reason": resolved_reason}
