"""Roles and the capabilities each one grants."""
from __future__ import annotations

import enum


class Role(str, enum.Enum):
    ADMIN = "admin"
    TIPSTER = "tipster"
    USER = "user"


class Capability(str, enum.Enum):
    PUBLISH_TIPS = "publish_tips"
    # Edit or delete other people's content, correct resolved tips,
    # raise the tier of a parlay.
    MODERATE_CONTENT = "moderate_content"
    MANAGE_CATALOG = "manage_catalog"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.TIPSTER: frozenset({Capability.PUBLISH_TIPS}),
    Role.USER: frozenset(),
}


def has_capability(role: Role | str | None, capability: Capability) -> bool:
    """Check whether a role grants a capability. Unknown roles grant nothing."""
    if role is None:
        return False
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES[role]


def can_modify(role: Role | str | None, actor_id: str, owner_id: str) -> bool:
    """Owners may modify their own content; moderators may modify anything."""
    return actor_id == owner_id or has_capability(role, Capability.MODERATE_CONTENT)
