"""RBAC (Role-Based Access Control) module for storeauth.

This module defines the role enumeration, the permission model, and the
checker that answers "may this role set perform this action".
"""

from .permissions import Action, Permission, PermissionChecker, ResourceType
from .roles import (
    Role,
    ROLE_DEFINITIONS,
    MANAGER_OR_ABOVE,
    BROAD_SCOPE_ROLES,
    NARROW_SCOPE_ROLES,
    GRANT_MANAGER_ROLES,
    checker_for,
    parse_role,
)

__all__ = [
    "Action",
    "Permission",
    "PermissionChecker",
    "ResourceType",
    "Role",
    "ROLE_DEFINITIONS",
    "MANAGER_OR_ABOVE",
    "BROAD_SCOPE_ROLES",
    "NARROW_SCOPE_ROLES",
    "GRANT_MANAGER_ROLES",
    "checker_for",
    "parse_role",
]
