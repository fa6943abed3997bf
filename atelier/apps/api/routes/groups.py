from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.apps.api.deps import (
    AccessContext,
    get_activity_channel,
    get_db,
    require_access,
)
from atelier.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from atelier.apps.api.response import (
    ListEnvelope,
    SuccessEnvelope,
    list_response,
    success_response,
)
from atelier.services import cascade
from atelier.services import groups as groups_service
from atelier.services.activity import ActivityChannel
from atelier.services.authz.guards import (
    ACTIVE_PRINCIPAL,
    GROUP_MANAGER,
    GROUP_MEMBER,
    GROUP_OWNER,
    PUBLIC,
)
from atelier.services.listing import normalize


router = APIRouter(prefix="/groups", tags=["groups"], responses=DEFAULT_ERROR_RESPONSES)


class GroupCreateRequest(BaseModel):
    # Name is validated by the service so blank and symbol-only names share one error path.
    name: Any = None
    website: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)

    model_config = {"extra": "forbid"}


class GroupPatchRequest(BaseModel):
    name: Any = None
    website: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)

    # Slug is not patchable; unknown fields are rejected rather than ignored.
    model_config = {"extra": "forbid"}


class MemberAddRequest(BaseModel):
    userId: Any = None
    role: Any = "member"


@router.get("", response_model=ListEnvelope[dict[str, Any]])
async def list_groups(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    order: str | None = Query(default=None),
    search: str | None = Query(default=None),
    _ctx: AccessContext = Depends(require_access(PUBLIC)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Raw strings in, bounded parameters out; malformed values fall back to defaults.
    params = normalize(
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        search=search,
        allowed_sort_fields=groups_service.GROUP_SORT_FIELDS,
    )
    rows, meta = await groups_service.list_groups(db, params=params)
    return list_response(rows, meta)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SuccessEnvelope[dict[str, Any]])
async def create_group(
    payload: GroupCreateRequest,
    ctx: AccessContext = Depends(require_access(ACTIVE_PRINCIPAL)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    group = await groups_service.create_group(
        db,
        actor=ctx.require_principal(),
        name=payload.name,
        website=payload.website,
        email=payload.email,
        activity=activity,
    )
    return success_response(group)


@router.get("/{slug}", response_model=SuccessEnvelope[dict[str, Any]])
async def get_group(
    slug: str,
    ctx: AccessContext = Depends(require_access(PUBLIC)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Anonymous viewers are allowed; a known viewer additionally sees their own role.
    group = await groups_service.get_group_by_slug(db, slug=slug, viewer=ctx.principal)
    return success_response(group)


@router.patch("/{group_id}", response_model=SuccessEnvelope[dict[str, Any]])
async def update_group(
    group_id: str,
    payload: GroupPatchRequest,
    ctx: AccessContext = Depends(require_access(GROUP_MANAGER)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    group = await groups_service.update_group(
        db,
        group_id=group_id,
        actor=ctx.require_principal(),
        fields=payload.model_dump(exclude_unset=True),
        activity=activity,
    )
    return success_response(group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_group(
    group_id: str,
    ctx: AccessContext = Depends(require_access(GROUP_OWNER)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> Response:
    # Owner only; platform admins are deliberately not exempt.
    await cascade.delete_group(db, group_id=group_id, actor=ctx.require_principal(), activity=activity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{group_id}/members", response_model=SuccessEnvelope[list[dict[str, Any]]])
async def list_members(
    group_id: str,
    _ctx: AccessContext = Depends(require_access(PUBLIC)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    members = await groups_service.list_members(db, group_id=group_id)
    return success_response(members)


@router.post(
    "/{group_id}/members",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[dict[str, Any]],
)
async def add_member(
    group_id: str,
    payload: MemberAddRequest,
    ctx: AccessContext = Depends(require_access(GROUP_MANAGER)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    member = await groups_service.add_member(
        db,
        group_id=group_id,
        actor=ctx.require_principal(),
        user_id=payload.userId,
        role=payload.role,
        activity=activity,
    )
    return success_response(member)


@router.delete(
    "/{group_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def remove_member(
    group_id: str,
    user_id: str,
    ctx: AccessContext = Depends(require_access(GROUP_MANAGER)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> Response:
    # The chain guarantees a resource role of at least manager here.
    await groups_service.remove_member(
        db,
        group_id=group_id,
        actor=ctx.require_principal(),
        actor_role=ctx.access.resource_role,
        user_id=user_id,
        activity=activity,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{group_id}/join",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[dict[str, Any]],
)
async def join_group(
    group_id: str,
    ctx: AccessContext = Depends(require_access(ACTIVE_PRINCIPAL)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> dict[str, Any]:
    member = await groups_service.join_group(
        db, group_id=group_id, actor=ctx.require_principal(), activity=activity
    )
    return success_response(member)


@router.post("/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def leave_group(
    group_id: str,
    ctx: AccessContext = Depends(require_access(GROUP_MEMBER)),
    db: AsyncSession = Depends(get_db),
    activity: ActivityChannel = Depends(get_activity_channel),
) -> Response:
    await groups_service.leave_group(
        db, group_id=group_id, actor=ctx.require_principal(), activity=activity
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
