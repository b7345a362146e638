"""
Role & Permission Authority for the admin panels

Key Features:
- Static module permission table, immutable and injectable
- Admin tier classification from the role ordering
- Manager/target rules for role changes, bans and point adjustments
- Fail closed: unknown roles and modules always resolve to deny

Every function here is pure. Callers must evaluate decisions per request,
before issuing any mutation, and must not cache them across requests.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Iterable, List, Mapping, Optional

from laudato.core.roles import (
    ADMIN_ALIAS,
    ADMIN_THRESHOLD,
    Role,
    RoleLike,
    normalize_role,
    role_ordinal,
)


class Module(str, Enum):
    """Protected functional areas of the admin panel"""
    DASHBOARD = "dashboard"
    USERS = "users"
    POINTS = "points"
    REWARDS = "rewards"
    REDEMPTIONS = "redemptions"
    PROMO_CODES = "promo_codes"
    DONATIONS = "donations"
    GCASH = "gcash"
    AUDIT_LOGS = "audit_logs"
    SETTINGS = "settings"


class ManageDecision(str, Enum):
    """Outcome of a manager/target role comparison"""
    ALLOWED = "allowed"
    DENIED = "denied"
    UNKNOWN_ROLE = "unknown_role"


@dataclass(frozen=True)
class PermissionTable:
    """
    Immutable module -> allowed roles mapping

    The literal "admin" alias is implicit in every entry and is not listed.
    """
    entries: Mapping[str, FrozenSet[Role]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {
            str(module.value if isinstance(module, Module) else module): frozenset(roles)
            for module, roles in self.entries.items()
        }
        object.__setattr__(self, "entries", MappingProxyType(frozen))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[RoleLike]]) -> "PermissionTable":
        """
        Build a table from raw role strings

        Unknown role strings are dropped so they can never match.
        """
        entries = {}
        for module, roles in mapping.items():
            normalized = (normalize_role(role) for role in roles)
            entries[module] = frozenset(role for role in normalized if role is not None)
        return cls(entries=entries)

    def allowed_roles(self, module: str) -> Optional[FrozenSet[Role]]:
        return self.entries.get(module)

    def modules(self) -> List[str]:
        return list(self.entries.keys())


DEFAULT_PERMISSION_TABLE = PermissionTable(entries={
    # Dashboard - visible to all admins
    Module.DASHBOARD: {Role.CANTEEN_ADMIN, Role.FINANCE_ADMIN, Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.USERS: {Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.POINTS: {Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.REWARDS: {Role.CANTEEN_ADMIN, Role.SA_ADMIN, Role.SUPER_ADMIN},
    # Reward verification at the canteen counter
    Module.REDEMPTIONS: {Role.CANTEEN_ADMIN, Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.PROMO_CODES: {Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.DONATIONS: {Role.FINANCE_ADMIN, Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.GCASH: {Role.FINANCE_ADMIN, Role.SA_ADMIN, Role.SUPER_ADMIN},
    Module.AUDIT_LOGS: {Role.SUPER_ADMIN},
    Module.SETTINGS: {Role.SUPER_ADMIN},
})


class PermissionAuthority:
    """
    Stateless permission decisions over an injected PermissionTable

    Security Principles:
    - Fail closed: deny on any unknown role or module
    - Peers never manage peers
    - Super admins never manage each other
    """

    def __init__(self, table: PermissionTable = DEFAULT_PERMISSION_TABLE):
        self.table = table

    def is_admin(self, role: RoleLike) -> bool:
        """
        Check whether a role has access to any admin module

        Args:
            role: Raw role value

        Returns:
            True for canteen_admin and above (including the "admin" alias)
        """
        return role_ordinal(role) >= ADMIN_THRESHOLD

    def has_permission(self, role: RoleLike, module: str) -> bool:
        """
        Check whether a role may open a module

        Args:
            role: Raw role value
            module: Module identifier, e.g. "redemptions"

        Returns:
            True if allowed. The literal "admin" alias bypasses the table.
        """
        if role == ADMIN_ALIAS:
            return True

        normalized = normalize_role(role)
        if normalized is None:
            return False

        key = module.value if isinstance(module, Module) else module
        if not isinstance(key, str):
            return False
        allowed = self.table.allowed_roles(key)
        if allowed is None:
            return False
        return normalized in allowed

    def check_manage_role(self, manager_role: RoleLike, target_role: RoleLike) -> ManageDecision:
        """
        Decide whether manager_role may modify an account holding target_role

        Covers role changes, bans and point adjustments. Unknown roles on either
        side resolve to UNKNOWN_ROLE so they are never manageable.
        """
        manager = normalize_role(manager_role)
        target = normalize_role(target_role)
        if manager is None or target is None:
            return ManageDecision.UNKNOWN_ROLE

        if manager is Role.SUPER_ADMIN:
            if target is Role.SUPER_ADMIN:
                return ManageDecision.DENIED
            return ManageDecision.ALLOWED

        if role_ordinal(manager) > role_ordinal(target):
            return ManageDecision.ALLOWED
        return ManageDecision.DENIED

    def can_manage_role(self, manager_role: RoleLike, target_role: RoleLike) -> bool:
        return self.check_manage_role(manager_role, target_role) is ManageDecision.ALLOWED

    def accessible_modules(self, role: RoleLike) -> List[str]:
        """Modules the role may open, in table order"""
        return [module for module in self.table.modules() if self.has_permission(role, module)]


_default_authority = PermissionAuthority()


def is_admin(role: RoleLike) -> bool:
    return _default_authority.is_admin(role)


def has_permission(role: RoleLike, module: str) -> bool:
    return _default_authority.has_permission(role, module)


def can_manage_role(manager_role: RoleLike, target_role: RoleLike) -> bool:
    return _default_authority.can_manage_role(manager_role, target_role)


def check_manage_role(manager_role: RoleLike, target_role: RoleLike) -> ManageDecision:
    return _default_authority.check_manage_role(manager_role, target_role)
