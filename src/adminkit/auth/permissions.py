"""
Role-based access control for adminkit.

Sessions carry a single access level. The admin level is granted everywhere;
every other level is granted only where an endpoint lists it.
"""

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    """
    Access levels a user can hold.
    """
    ADMIN = "admin"             # Full access to every endpoint
    MANAGEMENT = "management"
    FINANCE = "finance"


ALL_ROLES = tuple(role.value for role in Role)


def is_granted(access: str, allowed_roles: Iterable[str]) -> bool:
    """
    Check if an access level may call an endpoint.

    Args:
        access: The session's access level
        allowed_roles: Access levels the endpoint accepts

    Returns:
        bool: True if admin, or if access is one of allowed_roles
    """
    if access == Role.ADMIN.value:
        return True

    return any(access == _value(role) for role in allowed_roles)


def _value(role) -> str:
    return role.value if isinstance(role, Role) else role
