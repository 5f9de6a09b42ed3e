"""Access Decision Engine for storeauth.

Evaluates (principal, resource, action) against role facts and the
principal's resolved scope. Rules, first match wins:

1. Self-access: a principal may always read and update its own record.
2. Super admin: allow everything.
3. Group-wide records (no department): any principal in the same
   effective group may read.
4. The resource's owning department/store/group is in the resolved scope
   and the principal's roles permit the action.
5. Otherwise deny.

The role-escalation guard runs before all rules: only a super admin may
assign the super admin role. Denial is an ordinary result; every Deny
carries a reason code for the audit log.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from storeauth.common.logger import get_logger
from storeauth.core.errors import DeadlineExceeded
from storeauth.core.rbac.permissions import Action, ResourceType
from storeauth.core.rbac.roles import Role, checker_for
from storeauth.core.scope.graph import ScopeKind
from storeauth.core.scope.resolver import PrincipalFacts, ResolvedScope, ScopeResolver

logger = get_logger("decision_engine")


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class DecisionReason(str, Enum):
    """Why a decision came out the way it did (audit only)."""

    # Allow
    SELF_ACCESS = "self_access"
    SUPER_ADMIN = "super_admin"
    GROUP_WIDE = "group_wide"
    IN_SCOPE = "in_scope"

    # Deny
    ESCALATION = "escalation"
    SCOPE_MISMATCH = "scope_mismatch"
    ROLE_FORBIDS = "role_forbids"
    UNKNOWN_RESOURCE = "unknown_resource"
    TIMEOUT = "timeout"
    FACT_ERROR = "fact_error"
    NOT_FOUND = "not_found"
    ALREADY_REVOKED = "already_revoked"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Decision:
    """Allow or Deny, with an audit reason and an optional reference id."""

    effect: Effect
    reason: DecisionReason
    reference: Optional[str] = None

    @classmethod
    def allow(cls, reason: DecisionReason, reference: Optional[str] = None) -> "Decision":
        return cls(Effect.ALLOW, reason, reference)

    @classmethod
    def deny(cls, reason: DecisionReason) -> "Decision":
        return cls(Effect.DENY, reason)

    @property
    def allowed(self) -> bool:
        return self.effect is Effect.ALLOW

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class Resource:
    """Descriptor of the record being accessed.

    Ancestors that are not supplied are looked up in the scope graph; a
    record whose ``department_id`` is None is a group-wide record.
    """

    resource_type: ResourceType
    resource_id: Optional[str] = None
    department_id: Optional[str] = None
    store_id: Optional[str] = None
    group_id: Optional[str] = None

    @classmethod
    def group(cls, group_id: str) -> "Resource":
        return cls(ResourceType.GROUP, group_id, group_id=group_id)

    @classmethod
    def store(cls, store_id: str) -> "Resource":
        return cls(ResourceType.STORE, store_id, store_id=store_id)

    @classmethod
    def department(cls, department_id: str) -> "Resource":
        return cls(ResourceType.DEPARTMENT, department_id, department_id=department_id)

    @classmethod
    def principal(cls, principal_id: str) -> "Resource":
        return cls(ResourceType.PRINCIPAL, principal_id)

    @classmethod
    def record(
        cls,
        department_id: Optional[str] = None,
        *,
        store_id: Optional[str] = None,
        group_id: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> "Resource":
        return cls(ResourceType.RECORD, resource_id, department_id, store_id, group_id)


@dataclass(frozen=True)
class Location:
    """Where a resource sits in the tree."""

    department_id: Optional[str] = None
    store_id: Optional[str] = None
    group_id: Optional[str] = None

    @property
    def is_placed(self) -> bool:
        return bool(self.department_id or self.store_id or self.group_id)


class AccessDecisionEngine:
    """Policy evaluator over one request's resolver."""

    def __init__(self, resolver: ScopeResolver):
        self.resolver = resolver
        self.graph = resolver.graph

    # -- public ------------------------------------------------------------

    def decide(
        self,
        principal_id: str,
        resource: Resource,
        action: Action,
        *,
        target_role: Optional[Role] = None,
    ) -> Decision:
        """Return Allow or Deny; never raises for denial or lookup failure."""
        try:
            return self._decide(principal_id, resource, Action(action), target_role)
        except DeadlineExceeded as e:
            logger.error(f"Failing closed for {principal_id}: {e}")
            return Decision.deny(DecisionReason.TIMEOUT)
        except Exception:
            logger.exception(f"Fact lookup failed for {principal_id}; failing closed")
            return Decision.deny(DecisionReason.FACT_ERROR)

    def reachable_ids(self, principal_id: str, resource_type: ResourceType) -> FrozenSet[str]:
        """Ids of the given kind the principal can read, for query pre-filtering.

        ``record`` returns department ids, the column records are scoped by.
        """
        resource_type = ResourceType(resource_type)
        facts = self.resolver.facts_for(principal_id)
        scope = self.resolver.resolve(principal_id)
        # Rule 4 only admits ids the role set may read
        may_read = checker_for(facts.roles).can(resource_type, Action.READ)

        if resource_type is ResourceType.PRINCIPAL:
            return frozenset(
                pid for pid in self.resolver.identity.principal_ids() | {principal_id}
                if pid == principal_id
                or scope.is_universal
                or self._principal_readable(facts, scope, pid, may_read)
            )

        if not may_read:
            return frozenset()

        if scope.is_universal:
            kind = {
                ResourceType.GROUP: ScopeKind.GROUP,
                ResourceType.STORE: ScopeKind.STORE,
            }.get(resource_type, ScopeKind.DEPARTMENT)
            return self.graph.all_ids(kind)

        if resource_type is ResourceType.GROUP:
            return scope.group_ids
        if resource_type is ResourceType.STORE:
            return scope.visible_store_ids
        return scope.department_ids

    # -- rules -------------------------------------------------------------

    def _decide(
        self,
        principal_id: str,
        resource: Resource,
        action: Action,
        target_role: Optional[Role],
    ) -> Decision:
        facts = self.resolver.facts_for(principal_id)

        if (
            action is Action.ASSIGN_ROLE
            and target_role is Role.SUPER_ADMIN
            and Role.SUPER_ADMIN not in facts.roles
        ):
            return Decision.deny(DecisionReason.ESCALATION)

        # Rule 1
        if (
            resource.resource_type is ResourceType.PRINCIPAL
            and resource.resource_id == principal_id
            and action in (Action.READ, Action.UPDATE)
        ):
            return Decision.allow(DecisionReason.SELF_ACCESS)

        # Rule 2
        if Role.SUPER_ADMIN in facts.roles:
            return Decision.allow(DecisionReason.SUPER_ADMIN)

        location = self._locate(resource)
        if location is None:
            return Decision.deny(DecisionReason.UNKNOWN_RESOURCE)

        # Rule 3
        if (
            action is Action.READ
            and resource.resource_type in (ResourceType.RECORD, ResourceType.PRINCIPAL)
            and location.department_id is None
            and location.group_id is not None
            and location.group_id == self.resolver.effective_group(facts)
        ):
            return Decision.allow(DecisionReason.GROUP_WIDE)

        # Rule 4
        scope = self.resolver.resolve(principal_id)
        if self._in_scope(scope, location, action):
            if checker_for(facts.roles).can(resource.resource_type, action):
                return Decision.allow(DecisionReason.IN_SCOPE)
            return Decision.deny(DecisionReason.ROLE_FORBIDS)

        # Rule 5
        return Decision.deny(DecisionReason.SCOPE_MISMATCH)

    @staticmethod
    def _in_scope(scope: ResolvedScope, location: Location, action: Action) -> bool:
        if location.department_id is not None:
            return location.department_id in scope.department_ids
        if location.store_id is not None:
            stores = scope.store_ids if action.is_write else scope.visible_store_ids
            return location.store_id in stores
        if location.group_id is not None:
            return location.group_id in scope.group_ids
        return False

    def _principal_readable(
        self, facts: PrincipalFacts, scope: ResolvedScope, target_id: str, may_read: bool
    ) -> bool:
        location = self._locate(Resource.principal(target_id))
        if location is None:
            return False
        if location.group_id is not None and location.group_id == self.resolver.effective_group(facts):
            return True
        return may_read and self._in_scope(scope, location, Action.READ)

    def _locate(self, resource: Resource) -> Optional[Location]:
        """Place a resource in the tree; None if it cannot be placed."""
        graph = self.graph
        rtype = resource.resource_type

        if rtype is ResourceType.PRINCIPAL:
            target = self.resolver.identity.principal(resource.resource_id) if resource.resource_id else None
            if target is None:
                return None
            return Location(
                store_id=target.home_store_id if graph.contains(target.home_store_id) else None,
                group_id=graph.effective_home_group(target.home_group_id, target.home_store_id),
            )

        department_id = resource.department_id
        store_id = resource.store_id
        group_id = resource.group_id
        if rtype is ResourceType.DEPARTMENT:
            department_id = resource.resource_id or department_id
        elif rtype is ResourceType.STORE:
            store_id = resource.resource_id or store_id
        elif rtype is ResourceType.GROUP:
            group_id = resource.resource_id or group_id

        if department_id is not None:
            if graph.kind_of(department_id) is not ScopeKind.DEPARTMENT:
                logger.warning(f"{rtype.value} references missing department {department_id}")
                return None
            store_id = graph.store_of(department_id)
            group_id = graph.group_of(store_id)
        elif store_id is not None:
            if graph.kind_of(store_id) is not ScopeKind.STORE:
                logger.warning(f"{rtype.value} references missing store {store_id}")
                return None
            group_id = graph.group_of(store_id)
        elif group_id is not None and graph.kind_of(group_id) is not ScopeKind.GROUP:
            logger.warning(f"{rtype.value} references missing group {group_id}")
            return None

        location = Location(department_id, store_id, group_id)
        return location if location.is_placed else None
