from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.roles import AccountStatus, PlatformRole, ResourceRole, parse_resource_role
from atelier.persistence.repos import groups as groups_repo


@dataclass(frozen=True)
class Principal:
    # Verified identity handed to every component explicitly; never read from ambient state.
    user_id: str
    platform_role: PlatformRole
    status: AccountStatus
    api_key_id: str | None = None
    auth_method: str = "api_key"

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE


@dataclass(frozen=True)
class EffectiveAccess:
    """Both authority axes for one principal, resolved independently.

    ``resource_role`` is ``None`` when the principal does not participate in
    the resource at all, which fails every resource-scoped check. Platform
    ``admin`` is reported in ``platform_role`` only and never leaks into
    ``resource_role``.
    """

    principal_id: str | None
    is_authenticated: bool
    is_active: bool
    platform_role: PlatformRole | None
    resource_id: str | None = None
    resource_exists: bool | None = None
    resource_role: ResourceRole | None = None


def build_access(
    principal: Principal | None,
    *,
    resource_id: str | None = None,
    resource_exists: bool | None = None,
    resource_role: ResourceRole | None = None,
) -> EffectiveAccess:
    if principal is None:
        return EffectiveAccess(
            principal_id=None,
            is_authenticated=False,
            is_active=False,
            platform_role=None,
            resource_id=resource_id,
            resource_exists=resource_exists,
            resource_role=None,
        )
    return EffectiveAccess(
        principal_id=principal.user_id,
        is_authenticated=True,
        is_active=principal.is_active,
        platform_role=principal.platform_role,
        resource_id=resource_id,
        resource_exists=resource_exists,
        resource_role=resource_role,
    )


async def resolve_access(
    session: AsyncSession,
    principal: Principal | None,
    resource_id: str | None = None,
) -> EffectiveAccess:
    # Platform axis comes from the principal; resource axis from the membership relation.
    if resource_id is None:
        return build_access(principal)
    exists = await groups_repo.group_exists(session, resource_id)
    role: ResourceRole | None = None
    if principal is not None and exists:
        role = parse_resource_role(
            await groups_repo.get_member_role(session, resource_id, principal.user_id)
        )
    return build_access(
        principal,
        resource_id=resource_id,
        resource_exists=exists,
        resource_role=role,
    )
