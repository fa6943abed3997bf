from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.apps.api.deps import AccessContext, get_activity_channel, get_db, require_access
from atelier.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from atelier.apps.api.response import ListEnvelope, SuccessEnvelope, list_response, success_response
from atelier.core.config import get_settings
from atelier.core.errors import InternalError
from atelier.services import accounts as accounts_service
from atelier.services import moderation as moderation_service
from atelier.services import stats as stats_service
from atelier.services.activity import ACTIVITY_SORT_FIELDS, ActivityChannel, list_activity
from atelier.services.authz.guards import ADMIN_ONLY
from atelier.services.listing import normalize


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], responses=DEFAULT_ERROR_RESPONSES)


class ReasonRequest(BaseModel):
    reason: Any = None


@router.get("/stats", response_model=SuccessEnvelope[dict[str, Any]])
async def get_stats(
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    settings = get_settings()
    try:
        snapshot = await stats_service.aggregate(db, activity_limit=settings.stats_recent_activity_limit)
    except SQLAlchemyError as exc:
        logger.error("stats_aggregate_failed principal_id=%s", ctx.access.principal_id, exc_info=exc)
        raise InternalError() from exc
    return success_response(snapshot.as_dict())


@router.get("/activity", response_model=ListEnvelope[dict[str, Any]])
async def get_activity(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    order: str | None = Query(default=None),
    search: str | None = Query(default=None),
    action: str | None = Query(default=None),
    user_id: str | None = Query(default=None, alias="userId"),
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    params = normalize(
        page=page,
        limit=limit,
        order=order,
        search=search,
        allowed_sort_fields=ACTIVITY_SORT_FIELDS,
    )
    try:
        rows, meta = await list_activity(
            db,
            params=params,
            action=action,
            user_id=user_id,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
        )
    except SQLAlchemyError as exc:
        logger.error("activity_list_failed principal_id=%s", ctx.access.principal_id, exc_info=exc)
        raise InternalError() from exc
    return list_response(rows, meta)


@router.get("/users", response_model=ListEnvelope[dict[str, Any]])
async def list_users(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    order: str | None = Query(default=None),
    search: str | None = Query(default=None),
    status: str | None = Query(default=None),
    _ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    params = normalize(
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        search=search,
        allowed_sort_fields=accounts_service.USER_SORT_FIELDS,
    )
    rows, meta = await accounts_service.list_users(db, params=params, status=status)
    return list_response(rows, meta)


@router.post("/users/{user_id}/suspend", response_model=SuccessEnvelope[dict[str, Any]])
async def suspend_user(
    user_id: str,
    payload: ReasonRequest | None = Body(default=None),
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    result = await accounts_service.suspend_account(
        db,
        user_id=user_id,
        actor=ctx.require_principal(),
        reason=payload.reason if payload else None,
        activity=activity,
    )
    return success_response(result)


@router.post("/users/{user_id}/activate", response_model=SuccessEnvelope[dict[str, Any]])
async def activate_user(
    user_id: str,
    payload: ReasonRequest | None = Body(default=None),
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    result = await accounts_service.activate_account(
        db,
        user_id=user_id,
        actor=ctx.require_principal(),
        reason=payload.reason if payload else None,
        activity=activity,
    )
    return success_response(result)


@router.get("/messages", response_model=ListEnvelope[dict[str, Any]])
async def list_review_queue(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    order: str | None = Query(default=None),
    search: str | None = Query(default=None),
    flagged_only: bool = Query(default=False, alias="flaggedOnly"),
    _ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    params = normalize(
        page=page,
        limit=limit,
        order=order,
        search=search,
        allowed_sort_fields=moderation_service.MESSAGE_SORT_FIELDS,
    )
    rows, meta = await moderation_service.list_review_queue(db, params=params, flagged_only=flagged_only)
    return list_response(rows, meta)


@router.post("/messages/{message_id}/approve", response_model=SuccessEnvelope[dict[str, Any]])
async def approve_message(
    message_id: str,
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    result = await moderation_service.approve_message(
        db, message_id=message_id, actor=ctx.require_principal(), activity=activity
    )
    return success_response(result)


@router.post("/messages/{message_id}/reject", response_model=SuccessEnvelope[dict[str, Any]])
async def reject_message(
    message_id: str,
    payload: ReasonRequest | None = Body(default=None),
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    result = await moderation_service.reject_message(
        db,
        message_id=message_id,
        actor=ctx.require_principal(),
        reason=payload.reason if payload else None,
        activity=activity,
    )
    return success_response(result)


@router.post("/messages/{message_id}/flag", response_model=SuccessEnvelope[dict[str, Any]])
async def flag_message(
    message_id: str,
    payload: ReasonRequest | None = Body(default=None),
    ctx: AccessContext = Depends(require_access(ADMIN_ONLY)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    result = await moderation_service.flag_message(
        db,
        message_id=message_id,
        actor=ctx.require_principal(),
        reason=payload.reason if payload else None,
        activity=activity,
    )
    return success_response(result)
