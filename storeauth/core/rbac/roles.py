"""Role definitions for storeauth.

Defines the closed set of roles with their permission sets:
1. Super Admin - Full access, universal scope
2. Group Manager - Manages every store in their store group
3. Controller - Group-wide visibility, read-only
4. Department Manager - Manages the departments they are designated for
5. Operations Manager - Fixed-ops variant of department manager
6. Scheduler - Reads and schedules work within reachable scope
7. Read Only - Reads within reachable scope

Permissions only say WHAT a role may do; WHERE it may do it comes from
the scope resolver. Roles are additive: a principal's permissions are the
union of the permissions of every role it holds.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List

from .permissions import Action, Permission, PermissionChecker, ResourceType


class Role(str, Enum):
    """Closed enumeration of assignable roles."""

    SUPER_ADMIN = "super_admin"
    GROUP_MANAGER = "group_manager"
    CONTROLLER = "controller"
    DEPARTMENT_MANAGER = "department_manager"
    OPERATIONS_MANAGER = "operations_manager"
    SCHEDULER = "scheduler"
    READ_ONLY = "read_only"


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (ResourceType, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


SUPER_ADMIN_PERMISSIONS = [
    "*:*"  # Global wildcard - all permissions
]

GROUP_MANAGER_PERMISSIONS = _build_permissions(
    (ResourceType.GROUP, Action.READ),
    (ResourceType.GROUP, Action.UPDATE),
) + [
    "store:*",
    "department:*",
    "record:*",
] + _build_permissions(
    (ResourceType.PRINCIPAL, Action.READ),
    (ResourceType.PRINCIPAL, Action.CREATE),
    (ResourceType.PRINCIPAL, Action.UPDATE),
    (ResourceType.PRINCIPAL, Action.ASSIGN_ROLE),
)

CONTROLLER_PERMISSIONS = _build_permissions(
    (ResourceType.GROUP, Action.READ),
    (ResourceType.STORE, Action.READ),
    (ResourceType.DEPARTMENT, Action.READ),
    (ResourceType.PRINCIPAL, Action.READ),
    (ResourceType.RECORD, Action.READ),
)

DEPARTMENT_MANAGER_PERMISSIONS = _build_permissions(
    (ResourceType.STORE, Action.READ),
    (ResourceType.DEPARTMENT, Action.READ),
    (ResourceType.DEPARTMENT, Action.UPDATE),
    (ResourceType.PRINCIPAL, Action.READ),
    (ResourceType.RECORD, Action.READ),
    (ResourceType.RECORD, Action.CREATE),
    (ResourceType.RECORD, Action.UPDATE),
    (ResourceType.RECORD, Action.DELETE),
)

# Fixed-ops managers carry the same capabilities across the service,
# parts and body-shop departments they are assigned to
OPERATIONS_MANAGER_PERMISSIONS = list(DEPARTMENT_MANAGER_PERMISSIONS)

SCHEDULER_PERMISSIONS = _build_permissions(
    (ResourceType.GROUP, Action.READ),
    (ResourceType.STORE, Action.READ),
    (ResourceType.DEPARTMENT, Action.READ),
    (ResourceType.PRINCIPAL, Action.READ),
    (ResourceType.RECORD, Action.READ),
    (ResourceType.RECORD, Action.CREATE),
    (ResourceType.RECORD, Action.UPDATE),
)

READ_ONLY_PERMISSIONS = _build_permissions(
    (ResourceType.STORE, Action.READ),
    (ResourceType.DEPARTMENT, Action.READ),
    (ResourceType.PRINCIPAL, Action.READ),
    (ResourceType.RECORD, Action.READ),
)


ROLE_DEFINITIONS: Dict[Role, dict] = {
    Role.SUPER_ADMIN: {
        "name": "Super Admin",
        "description": "Full access to every group, store and department",
        "permissions": SUPER_ADMIN_PERMISSIONS,
    },
    Role.GROUP_MANAGER: {
        "name": "Group Manager",
        "description": "Manages all stores and departments in their store group",
        "permissions": GROUP_MANAGER_PERMISSIONS,
    },
    Role.CONTROLLER: {
        "name": "Controller",
        "description": "Group-wide visibility with read-only access",
        "permissions": CONTROLLER_PERMISSIONS,
    },
    Role.DEPARTMENT_MANAGER: {
        "name": "Department Manager",
        "description": "Manages the departments they are designated manager of",
        "permissions": DEPARTMENT_MANAGER_PERMISSIONS,
    },
    Role.OPERATIONS_MANAGER: {
        "name": "Operations Manager",
        "description": "Manages fixed-operations departments they are assigned to",
        "permissions": OPERATIONS_MANAGER_PERMISSIONS,
    },
    Role.SCHEDULER: {
        "name": "Scheduler",
        "description": "Reads and schedules work within reachable scope",
        "permissions": SCHEDULER_PERMISSIONS,
    },
    Role.READ_ONLY: {
        "name": "Read Only",
        "description": "Read access within reachable scope",
        "permissions": READ_ONLY_PERMISSIONS,
    },
}


# Privileged person-record fields are visible to these roles
MANAGER_OR_ABOVE: FrozenSet[Role] = frozenset([
    Role.SUPER_ADMIN,
    Role.GROUP_MANAGER,
    Role.DEPARTMENT_MANAGER,
    Role.OPERATIONS_MANAGER,
])

# Roles whose scope is every store in the effective home group
BROAD_SCOPE_ROLES: FrozenSet[Role] = frozenset([
    Role.GROUP_MANAGER,
    Role.CONTROLLER,
])

# Roles whose scope derives from designated department management
NARROW_SCOPE_ROLES: FrozenSet[Role] = frozenset([
    Role.DEPARTMENT_MANAGER,
    Role.OPERATIONS_MANAGER,
])

# Roles allowed to create and revoke explicit grants
GRANT_MANAGER_ROLES: FrozenSet[Role] = frozenset([
    Role.SUPER_ADMIN,
    Role.GROUP_MANAGER,
])


def parse_role(value: str) -> Role:
    """Parse a role name; raises ValueError for anything outside the enum."""
    try:
        return Role(value)
    except ValueError:
        raise ValueError(f"Unknown role: {value}") from None


def permissions_for(roles: Iterable[Role]) -> FrozenSet[str]:
    """Union of the permissions of every role held."""
    perms = set()
    for role in roles:
        perms.update(ROLE_DEFINITIONS[role]["permissions"])
    return frozenset(perms)


def checker_for(roles: Iterable[Role]) -> PermissionChecker:
    """Build a PermissionChecker for a role set."""
    return PermissionChecker(permissions_for(roles))
