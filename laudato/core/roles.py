"""
Role tiers for the Laudato admin panels

Hierarchy (lowest to highest):
- student, employee, guest: no admin capability
- canteen_admin: reward verification
- finance_admin: GCash verification and donations
- sa_admin: student management and promo codes
- super_admin: full access

The legacy label "admin" is an alias of super_admin.
"""
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class Role(str, Enum):
    """Canonical role values stored on user accounts"""
    STUDENT = "student"
    EMPLOYEE = "employee"
    GUEST = "guest"
    CANTEEN_ADMIN = "canteen_admin"
    FINANCE_ADMIN = "finance_admin"
    SA_ADMIN = "sa_admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ALIAS = "admin"

ROLE_ALIASES: Dict[str, Role] = {
    ADMIN_ALIAS: Role.SUPER_ADMIN,
}

# Order matters: the index is the role's ordinal
ROLE_ORDER: Tuple[Role, ...] = (
    Role.STUDENT,
    Role.EMPLOYEE,
    Role.GUEST,
    Role.CANTEEN_ADMIN,
    Role.FINANCE_ADMIN,
    Role.SA_ADMIN,
    Role.SUPER_ADMIN,
)

ADMIN_THRESHOLD = ROLE_ORDER.index(Role.CANTEEN_ADMIN)

UNKNOWN_ORDINAL = -1

RoleLike = Union[Role, str, None]


def normalize_role(role: RoleLike) -> Optional[Role]:
    """
    Resolve a raw role value to its canonical Role

    Args:
        role: Role enum member, raw string from the datastore, or None

    Returns:
        Canonical Role, or None when the value is not a known role
    """
    if isinstance(role, Role):
        return role
    if not isinstance(role, str):
        return None
    if role in ROLE_ALIASES:
        return ROLE_ALIASES[role]
    try:
        return Role(role)
    except ValueError:
        return None


def role_ordinal(role: RoleLike) -> int:
    """Position in ROLE_ORDER, or -1 for unknown roles"""
    normalized = normalize_role(role)
    if normalized is None:
        return UNKNOWN_ORDINAL
    return ROLE_ORDER.index(normalized)
