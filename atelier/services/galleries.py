from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.errors import NotFoundError
from atelier.domain.models import Gallery, User
from atelier.services.listing import ListParams, PageMeta, paginate


GALLERY_SORT_FIELDS = ("created_at", "updated_at", "name")
PUBLIC_STATUS = "active"


def gallery_to_dict(gallery: Gallery, owner_username: str | None) -> dict[str, Any]:
    return {
        "id": gallery.id,
        "slug": gallery.slug,
        "name": gallery.name,
        "description": gallery.description,
        "status": gallery.status,
        "userId": gallery.user_id,
        "ownerUsername": owner_username,
        "createdAt": gallery.created_at.isoformat() if gallery.created_at else None,
        "updatedAt": gallery.updated_at.isoformat() if gallery.updated_at else None,
    }


def _public_galleries():
    # Only active galleries by active owners are visible to the public.
    return (
        select(Gallery, User.username)
        .join(User, Gallery.user_id == User.id)
        .where(Gallery.status == PUBLIC_STATUS, User.status == "active")
    )


async def list_public_galleries(
    session: AsyncSession, *, params: ListParams
) -> tuple[list[dict[str, Any]], PageMeta]:
    rows, meta = await paginate(
        session,
        _public_galleries(),
        params=params,
        sort_columns={
            "created_at": Gallery.created_at,
            "updated_at": Gallery.updated_at,
            "name": Gallery.name,
        },
        search_columns=(Gallery.name,),
        tiebreaker=Gallery.id,
    )
    return [gallery_to_dict(gallery, username) for gallery, username in rows], meta


async def get_public_gallery(session: AsyncSession, *, gallery_id: str) -> dict[str, Any]:
    # Drafts and archived galleries are reported as absent rather than forbidden.
    result = await session.execute(_public_galleries().where(Gallery.id == gallery_id))
    row = result.first()
    if row is None:
        raise NotFoundError.for_entity("Gallery")
    gallery, username = row
    return gallery_to_dict(gallery, username)
