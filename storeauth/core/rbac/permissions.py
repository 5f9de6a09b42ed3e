"""Permission model for storeauth RBAC.

Defines the resource types and actions a role can be permitted. A role
carries a list of permission strings; `store:*` covers every action on a
resource and `*:*` covers everything.

Permission string format: "resource:action"
Examples:
  - record:read
  - department:update
  - principal:assign_role
  - store:grant_access
"""

from enum import Enum
from typing import Iterable, NamedTuple, Union


class ResourceType(str, Enum):
    """Kinds of records the engine can authorize."""

    GROUP = "group"             # Store group (tenant boundary)
    STORE = "store"
    DEPARTMENT = "department"
    PRINCIPAL = "principal"     # Person record
    RECORD = "record"           # Any department-owned (or group-wide) record


class Action(str, Enum):
    """Actions that can be performed on resources."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    ASSIGN_ROLE = "assign_role"     # Assign or revoke a role on a principal
    GRANT_ACCESS = "grant_access"   # Create or revoke an explicit grant

    @property
    def is_write(self) -> bool:
        return self is not Action.READ


class Permission(NamedTuple):
    """A permission is a combination of resource type and action."""
    resource: ResourceType
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"


class PermissionChecker:
    """Checks a permission against the union of a principal's role permissions."""

    def __init__(self, permissions: Iterable[str]):
        self.permissions = frozenset(permissions)

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        """Check for an exact, resource wildcard, or global wildcard match."""
        perm_str = str(permission) if isinstance(permission, Permission) else permission

        if perm_str in self.permissions:
            return True

        if ":" in perm_str:
            resource = perm_str.split(":")[0]
            if f"{resource}:*" in self.permissions:
                return True
            if "*:*" in self.permissions:
                return True

        return False

    def can(self, resource: ResourceType, action: Action) -> bool:
        """Check if the holder can perform action on the resource type."""
        return self.has_permission(Permission(resource, action))

