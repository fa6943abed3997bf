from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from atelier.core.errors import AtelierError, ForbiddenError, NotFoundError, UnauthenticatedError
from atelier.domain.roles import PlatformRole, ResourceRole
from atelier.services.authz.access import EffectiveAccess


# Evaluation stages; a chain always runs its gates in ascending stage order.
STAGE_AUTHENTICATED = 10
STAGE_ACTIVE = 20
STAGE_PLATFORM_ROLE = 30
STAGE_RESOURCE_EXISTS = 35
STAGE_RESOURCE_ROLE = 40


@dataclass(frozen=True)
class Gate:
    # A single predicate over the resolved access; returns the failure or None to pass.
    name: str
    stage: int
    check: Callable[[EffectiveAccess], AtelierError | None]
    needs_resource: bool = False

    def __call__(self, access: EffectiveAccess) -> AtelierError | None:
        return self.check(access)


def authenticated() -> Gate:
    def _check(access: EffectiveAccess) -> AtelierError | None:
        if not access.is_authenticated:
            return UnauthenticatedError()
        return None

    return Gate(name="authenticated", stage=STAGE_AUTHENTICATED, check=_check)


def active() -> Gate:
    def _check(access: EffectiveAccess) -> AtelierError | None:
        if not access.is_active:
            return ForbiddenError("account not active")
        return None

    return Gate(name="active", stage=STAGE_ACTIVE, check=_check)


def platform_role(required: PlatformRole) -> Gate:
    def _check(access: EffectiveAccess) -> AtelierError | None:
        if required is PlatformRole.ADMIN and access.platform_role is not PlatformRole.ADMIN:
            return ForbiddenError("insufficient platform role")
        return None

    return Gate(name=f"platform_role:{required.value}", stage=STAGE_PLATFORM_ROLE, check=_check)


def resource_exists() -> Gate:
    def _check(access: EffectiveAccess) -> AtelierError | None:
        if access.resource_exists is False:
            return NotFoundError.for_entity("Group")
        return None

    return Gate(
        name="resource_exists",
        stage=STAGE_RESOURCE_EXISTS,
        check=_check,
        needs_resource=True,
    )


def resource_role(required: ResourceRole) -> Gate:
    # Platform admins get no pass here; an override would have to be its own gate.
    def _check(access: EffectiveAccess) -> AtelierError | None:
        role = access.resource_role
        if role is None or not role.satisfies(required):
            return ForbiddenError("insufficient resource role")
        return None

    return Gate(
        name=f"resource_role:{required.value}",
        stage=STAGE_RESOURCE_ROLE,
        check=_check,
        needs_resource=True,
    )


class GuardChain:
    """Ordered, short-circuiting sequence of gates declared per endpoint.

    Gates are sorted by stage regardless of the order they are passed in. Any
    non-empty chain starts with :func:`authenticated`, added when omitted, so
    no later gate ever looks at a missing principal. A chain with a
    resource-role gate also checks that the resource exists first.
    """

    def __init__(self, *gates: Gate) -> None:
        selected = list(gates)
        names = {gate.name for gate in selected}
        if selected and "authenticated" not in names:
            selected.append(authenticated())
        if any(gate.stage == STAGE_RESOURCE_ROLE for gate in selected) and "resource_exists" not in names:
            selected.append(resource_exists())
        self.gates: tuple[Gate, ...] = tuple(sorted(selected, key=lambda gate: gate.stage))

    @property
    def needs_resource(self) -> bool:
        return any(gate.needs_resource for gate in self.gates)

    @property
    def gate_names(self) -> tuple[str, ...]:
        return tuple(gate.name for gate in self.gates)

    def evaluate(self, access: EffectiveAccess) -> AtelierError | None:
        for gate in self.gates:
            failure = gate(access)
            if failure is not None:
                return failure
        return None

    def enforce(self, access: EffectiveAccess) -> None:
        failure = self.evaluate(access)
        if failure is not None:
            raise failure

    def __repr__(self) -> str:
        return f"GuardChain({', '.join(self.gate_names)})"


# Chains shared by the API routes.
PUBLIC = GuardChain()
ACTIVE_PRINCIPAL = GuardChain(authenticated(), active())
ADMIN_ONLY = GuardChain(authenticated(), active(), platform_role(PlatformRole.ADMIN))
GROUP_MEMBER = GuardChain(authenticated(), active(), resource_role(ResourceRole.MEMBER))
GROUP_MANAGER = GuardChain(authenticated(), active(), resource_role(ResourceRole.MANAGER))
GROUP_OWNER = GuardChain(authenticated(), active(), resource_role(ResourceRole.OWNER))
