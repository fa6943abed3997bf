from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.config import get_settings
from atelier.core.errors import UnauthenticatedError
from atelier.domain.models import ApiKey, User
from atelier.domain.roles import parse_account_status, parse_platform_role
from atelier.persistence.db import SessionLocal, get_session
from atelier.persistence.repos import users as users_repo
from atelier.services.activity import ActivityChannel, get_request_context
from atelier.services.auth.api_keys import hash_api_key, parse_bearer_token
from atelier.services.authz.access import EffectiveAccess, Principal, resolve_access
from atelier.services.authz.guards import GuardChain


logger = logging.getLogger(__name__)

RESOURCE_PATH_PARAM = "group_id"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


async def _touch_last_used(api_key_id: str) -> None:
    # Update last_used_at outside the request transaction; failures only cost freshness.
    async with SessionLocal() as session:
        try:
            await session.execute(
                update(ApiKey)
                .where(ApiKey.id == api_key_id)
                .values(last_used_at=func.now())
            )
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("api_key_touch_failed api_key_id=%s", api_key_id, exc_info=exc)


def _principal_from_user(user: User, *, api_key_id: str | None, auth_method: str) -> Principal | None:
    # Rows with roles or statuses we do not recognize never become principals.
    try:
        role = parse_platform_role(user.role)
        status = parse_account_status(user.status)
    except ValueError:
        logger.warning("principal_rejected user_id=%s reason=unknown_role_or_status", user.id)
        return None
    return Principal(
        user_id=user.id,
        platform_role=role,
        status=status,
        api_key_id=api_key_id,
        auth_method=auth_method,
    )


async def _principal_from_dev_headers(request: Request, db: AsyncSession) -> Principal | None:
    # Allow X-User-Id only when explicitly enabled for local dev.
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None
    user = await users_repo.get_user(db, user_id)
    if user is None:
        return None
    return _principal_from_user(user, api_key_id="dev-bypass", auth_method="dev_bypass")


async def get_optional_principal(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> Principal | None:
    """Resolve the verified principal for the request, or ``None``.

    Missing, malformed, unknown and revoked credentials all resolve to
    ``None``; whether that is acceptable is decided by the endpoint's guard
    chain, not here.
    """
    settings = get_settings()
    principal: Principal | None = None
    if settings.auth_dev_bypass:
        principal = await _principal_from_dev_headers(request, db)
    if principal is None:
        token = parse_bearer_token(request.headers.get(settings.auth_api_key_header))
        if token:
            found = await users_repo.get_user_by_key_hash(db, hash_api_key(token))
            if found is not None:
                api_key, user = found
                principal = _principal_from_user(user, api_key_id=api_key.id, auth_method="api_key")
                if principal is not None:
                    background_tasks.add_task(_touch_last_used, api_key.id)
    # Attach to request state for logging only; components receive the principal explicitly.
    request.state.principal_id = principal.user_id if principal else None
    return principal


def get_activity_channel(request: Request, background_tasks: BackgroundTasks) -> ActivityChannel:
    # Entries are written after the response is sent, in their own session.
    context = get_request_context(request)
    channel = ActivityChannel(ip_address=context["ip_address"], user_agent=context["user_agent"])
    background_tasks.add_task(channel.flush)
    return channel


@dataclass(frozen=True)
class AccessContext:
    principal: Principal | None
    access: EffectiveAccess

    def require_principal(self) -> Principal:
        # Every non-empty chain authenticates first, so this only fires on a public route.
        if self.principal is None:
            raise UnauthenticatedError()
        return self.principal


def require_access(chain: GuardChain) -> Callable[..., Awaitable[AccessContext]]:
    """Build a dependency that enforces ``chain`` before the handler runs.

    Resource-scoped chains read the group id from the ``group_id`` path
    parameter and resolve the principal's membership role for it.
    """

    async def _dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
        principal: Principal | None = Depends(get_optional_principal),
    ) -> AccessContext:
        resource_id = request.path_params.get(RESOURCE_PATH_PARAM) if chain.needs_resource else None
        access = await resolve_access(db, principal, resource_id)
        failure = chain.evaluate(access)
        if failure is not None:
            logger.info(
                "access_denied code=%s principal_id=%s resource_id=%s path=%s chain=%s",
                failure.code,
                access.principal_id,
                resource_id,
                request.url.path,
                ",".join(chain.gate_names),
            )
            raise failure
        return AccessContext(principal=principal, access=access)

    return _dependency
