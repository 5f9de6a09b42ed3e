"""Exception taxonomy for the authorization engine.

Configuration faults are raised while loading snapshots and cause the
snapshot to be rejected. Grant and role state errors are raised by the
stores and turned into Deny results by the service layer. Access denial
itself is never an exception.
"""

from typing import Optional, Sequence


class StoreAuthError(Exception):
    """Base class for engine errors."""


class ConfigurationFault(StoreAuthError):
    """A loaded snapshot violates a structural invariant."""


class HierarchyError(ConfigurationFault):
    """The Group -> Store -> Department snapshot is malformed."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.node_id = node_id


class HierarchyCycleError(HierarchyError):
    """A scope node is its own transitive ancestor."""

    def __init__(self, node_id: str, path: Sequence[str]):
        super().__init__(
            f"Cycle in scope hierarchy at {node_id}: {' -> '.join(path)}",
            node_id,
        )
        self.path = list(path)


class ManagerChainCycleError(ConfigurationFault):
    """A principal's reports-to chain loops back on itself."""

    def __init__(self, principal_id: str, path: Sequence[str]):
        super().__init__(
            f"Cycle in reports-to chain at {principal_id}: {' -> '.join(path)}"
        )
        self.principal_id = principal_id
        self.path = list(path)


class GrantError(StoreAuthError):
    """Base class for grant state errors."""

    def __init__(self, message: str, grant_id: Optional[str] = None):
        super().__init__(message)
        self.grant_id = grant_id


class GrantNotFoundError(GrantError):
    """No grant exists with the given id."""

    def __init__(self, grant_id: str):
        super().__init__(f"Grant {grant_id} not found", grant_id)


class GrantAlreadyRevokedError(GrantError):
    """Revocation is terminal; the grant cannot be revoked twice."""

    def __init__(self, grant_id: str):
        super().__init__(f"Grant {grant_id} is already revoked", grant_id)


class RoleAssignmentNotFoundError(StoreAuthError):
    """The principal holds no active assignment of the role."""

    def __init__(self, principal_id: str, role: str):
        super().__init__(f"No active {role} assignment for {principal_id}")
        self.principal_id = principal_id
        self.role = role


class DeadlineExceeded(StoreAuthError):
    """A decision ran past its deadline and must fail closed."""
