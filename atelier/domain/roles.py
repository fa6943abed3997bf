from __future__ import annotations

from enum import Enum


class PlatformRole(str, Enum):
    # Principal-global authority; never scoped to a resource.
    USER = "user"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class ResourceRole(str, Enum):
    """Membership-scoped role with a total order ``owner > manager > member``.

    Comparison operators use the rank rather than string ordering, so
    ``ResourceRole.OWNER >= ResourceRole.MANAGER`` holds while the raw strings
    would compare the other way round.
    """

    MEMBER = "member"
    MANAGER = "manager"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _RESOURCE_ROLE_RANK[self]

    def satisfies(self, required: "ResourceRole") -> bool:
        return self.rank >= required.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ResourceRole):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ResourceRole):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ResourceRole):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ResourceRole):
            return NotImplemented
        return self.rank >= other.rank


_RESOURCE_ROLE_RANK: dict[ResourceRole, int] = {
    ResourceRole.MEMBER: 1,
    ResourceRole.MANAGER: 2,
    ResourceRole.OWNER: 3,
}

# Roles a manager or owner may grant through membership management.
ASSIGNABLE_ROLES: frozenset[ResourceRole] = frozenset({ResourceRole.MEMBER, ResourceRole.MANAGER})


def parse_resource_role(value: str | None) -> ResourceRole | None:
    # None means "not a participant"; unknown literals are a data error, not a missing role.
    if value is None:
        return None
    try:
        return ResourceRole(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported resource role: {value}") from exc


def parse_platform_role(value: str) -> PlatformRole:
    try:
        return PlatformRole(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported platform role: {value}") from exc


def parse_account_status(value: str) -> AccountStatus:
    try:
        return AccountStatus(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported account status: {value}") from exc


GALLERY_STATUSES: tuple[str, ...] = ("active", "archived", "draft")
ARTWORK_STATUSES: tuple[str, ...] = ("active", "draft", "deleted")
MESSAGE_STATUSES: tuple[str, ...] = ("sent", "read", "pending_review", "approved", "rejected")
USER_STATUSES: tuple[str, ...] = tuple(status.value for status in AccountStatus)
