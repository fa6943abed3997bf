from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.apps.api.deps import get_db
from atelier.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from atelier.apps.api.response import ListEnvelope, SuccessEnvelope, list_response, success_response
from atelier.services import galleries as galleries_service
from atelier.services.listing import normalize


router = APIRouter(prefix="/galleries", tags=["galleries"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("", response_model=ListEnvelope[dict[str, Any]])
async def list_galleries(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    order: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    params = normalize(
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        search=search,
        allowed_sort_fields=galleries_service.GALLERY_SORT_FIELDS,
    )
    rows, meta = await galleries_service.list_public_galleries(db, params=params)
    return list_response(rows, meta)


@router.get("/{gallery_id}", response_model=SuccessEnvelope[dict[str, Any]])
async def get_gallery(gallery_id: str, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    gallery = await galleries_service.get_public_gallery(db, gallery_id=gallery_id)
    return success_response(gallery)
