from __future__ import annotations

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PROJECT_TEAM_MEMBER = "PROJECT_TEAM_MEMBER"
    GENERAL_MEMBER = "GENERAL_MEMBER"
    USER = "USER"


ADMIN_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


def parse_roles(raw: str | None) -> list[Role]:
    roles: list[Role] = []
    for item in (raw or "").split(","):
        value = item.strip().upper()
        if not value:
            continue
        try:
            role = Role(value)
        except ValueError:
            continue
        if role not in roles:
            roles.append(role)
    return roles


def has_required_role(user_roles: Iterable[Role], required: Iterable[Role]) -> bool:
    user_role_set = {Role(r) for r in user_roles}
    if Role.SUPER_ADMIN in user_role_set:
        return True
    return any(Role(role) in user_role_set for role in required)


def is_admin(user_roles: Iterable[Role]) -> bool:
    return has_required_role(user_roles, ADMIN_ROLES)
