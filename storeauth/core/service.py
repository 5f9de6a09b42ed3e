"""Authorization service: the interface exposed to the application layer.

Wires the fact stores, resolver, decision engine, field mask and auditor.
Each call builds a fresh request context, so resolved scopes are never
reused across requests. Use ``request()`` directly to share one context
(and its memoized scopes) across several checks in the same request.

Access denial is returned as a Decision, never raised.
"""

from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional, Union

from storeauth.common.config import HierarchyConfig
from storeauth.common.logger import get_logger
from storeauth.core.audit import DecisionAuditor
from storeauth.core.deadline import Deadline
from storeauth.core.errors import (
    DeadlineExceeded,
    GrantAlreadyRevokedError,
    GrantNotFoundError,
    RoleAssignmentNotFoundError,
)
from storeauth.core.policy.engine import AccessDecisionEngine, Decision, DecisionReason, Resource
from storeauth.core.policy.fields import FieldVisibilityMask, person_record
from storeauth.core.rbac.permissions import Action, ResourceType
from storeauth.core.rbac.roles import GRANT_MANAGER_ROLES, Role, parse_role
from storeauth.core.scope.grants import Grant, GrantStore, InMemoryGrantStore
from storeauth.core.scope.graph import ScopeGraph, ScopeGraphHolder, ScopeKind
from storeauth.core.scope.identity import IdentityStore, InMemoryIdentityStore, Principal
from storeauth.core.scope.resolver import ResolvedScope, ScopeResolver

logger = get_logger("service")

SYSTEM_ACTOR = "system"


class RequestContext:
    """One request's view of the facts: resolver, engine and mask."""

    def __init__(self, service: "AuthorizationService"):
        self.service = service
        self.resolver = ScopeResolver(
            service.graph.current,
            service.identity,
            service.grants,
            Deadline(service.timeout_seconds),
        )
        self.engine = AccessDecisionEngine(self.resolver)
        self.mask = FieldVisibilityMask(service.identity)

    def decide(
        self,
        principal_id: str,
        resource: Resource,
        action: Union[Action, str],
        *,
        target_role: Optional[Role] = None,
    ) -> Decision:
        action = Action(action)
        decision = self.engine.decide(principal_id, resource, action, target_role=target_role)
        self.service.auditor.record(
            principal_id,
            action.value,
            resource.resource_type.value,
            resource.resource_id or resource.department_id or resource.store_id or resource.group_id,
            decision,
            target_role=target_role.value if target_role else None,
        )
        return decision

    def reachable_ids(
        self, principal_id: str, resource_type: Union[ResourceType, str]
    ) -> FrozenSet[str]:
        try:
            return self.engine.reachable_ids(principal_id, ResourceType(resource_type))
        except DeadlineExceeded as e:
            logger.error(f"Failing closed on reachable ids for {principal_id}: {e}")
        except ValueError:
            raise
        except Exception:
            logger.exception(f"Fact lookup failed for {principal_id}; returning no ids")
        return frozenset()

    def resolve(self, principal_id: str) -> ResolvedScope:
        return self.resolver.resolve(principal_id)

    def visible_fields(self, requester_id: str, target_id: str) -> FrozenSet[str]:
        roles = self.resolver.facts_for(requester_id).roles
        return self.mask.visible_fields(requester_id, target_id, roles)


class AuthorizationService:
    """Decide, ReachableIds, VisibleFields, Grant/Revoke, AssignRole/RevokeRole."""

    def __init__(
        self,
        graph: ScopeGraphHolder,
        identity: IdentityStore,
        grants: GrantStore,
        *,
        auditor: Optional[DecisionAuditor] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.graph = graph
        self.identity = identity
        self.grants = grants
        self.auditor = auditor or DecisionAuditor()
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_hierarchy(cls, config: HierarchyConfig, **kwargs: Any) -> "AuthorizationService":
        """Build an in-memory service seeded from a hierarchy snapshot."""
        graph = ScopeGraphHolder(ScopeGraph.from_snapshot(config.graph_snapshot()))
        identity = InMemoryIdentityStore(
            Principal(
                id=p.id,
                full_name=p.full_name,
                email=p.email,
                home_store_id=p.home_store_id,
                home_group_id=p.home_group_id,
                reports_to=p.reports_to,
            )
            for p in config.principals
        )
        for p in config.principals:
            for role_name in p.roles:
                identity.assign_role(p.id, parse_role(role_name), SYSTEM_ACTOR)

        grants = InMemoryGrantStore()
        for g in config.grants:
            grants.grant(g.principal_id, ScopeKind(g.scope_kind), g.scope_id, g.granted_by)

        return cls(graph, identity, grants, **kwargs)

    def request(self) -> RequestContext:
        return RequestContext(self)

    # -- reads -------------------------------------------------------------

    def decide(
        self,
        principal_id: str,
        resource: Resource,
        action: Union[Action, str],
        *,
        target_role: Optional[Role] = None,
    ) -> Decision:
        return self.request().decide(principal_id, resource, action, target_role=target_role)

    def reachable_ids(
        self, principal_id: str, resource_type: Union[ResourceType, str]
    ) -> FrozenSet[str]:
        return self.request().reachable_ids(principal_id, resource_type)

    def resolved_scope(self, principal_id: str) -> ResolvedScope:
        return self.request().resolve(principal_id)

    def visible_fields(self, requester_id: str, target_id: str) -> FrozenSet[str]:
        return self.request().visible_fields(requester_id, target_id)

    def redact(self, requester_id: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        roles = self.identity.roles_of(requester_id)
        return FieldVisibilityMask(self.identity).redact(requester_id, record, roles)

    def read_person(self, requester_id: str, target_id: str) -> Optional[Dict[str, Any]]:
        """Authorized, masked person record; None when the read is denied."""
        ctx = self.request()
        if not ctx.decide(requester_id, Resource.principal(target_id), Action.READ):
            return None
        target = self.identity.principal(target_id)
        if target is None:
            return None
        record = person_record(target, self.identity.roles_of(target_id))
        roles = ctx.resolver.facts_for(requester_id).roles
        return ctx.mask.redact(requester_id, record, roles)

    # -- grants ------------------------------------------------------------

    def grant(self, principal_id: str, scope_id: str, granted_by: str) -> Decision:
        """Grant a store or department; ``reference`` carries the grant id."""
        ctx = self.request()
        kind = ctx.resolver.graph.kind_of(scope_id)
        if kind is ScopeKind.STORE:
            target = Resource.store(scope_id)
        elif kind is ScopeKind.DEPARTMENT:
            target = Resource.department(scope_id)
        else:
            decision = Decision.deny(DecisionReason.UNKNOWN_RESOURCE)
            self.auditor.record(granted_by, Action.GRANT_ACCESS.value, "scope", scope_id, decision)
            return decision

        denial = self._grant_manager_denial(ctx, granted_by, target.resource_type.value, scope_id)
        if denial is not None:
            return denial
        decision = ctx.decide(granted_by, target, Action.GRANT_ACCESS)
        if not decision:
            return decision

        grant = self.grants.grant(principal_id, kind, scope_id, granted_by)
        return Decision.allow(decision.reason, reference=grant.id)

    def revoke(self, grant_id: str, revoked_by: Optional[str] = None) -> Decision:
        """Revoke a grant. ``revoked_by=None`` is a trusted system call."""
        grant = self.grants.get(grant_id)
        if grant is None:
            return self._deny(revoked_by, "grant", grant_id, DecisionReason.NOT_FOUND)
        if not grant.is_active:
            return self._deny(revoked_by, "grant", grant_id, DecisionReason.ALREADY_REVOKED)

        decision = Decision.allow(DecisionReason.SUPER_ADMIN)
        if revoked_by is not None:
            ctx = self.request()
            denial = self._grant_manager_denial(ctx, revoked_by, "grant", grant_id)
            if denial is not None:
                return denial
            decision = ctx.decide(revoked_by, _grant_target(grant), Action.GRANT_ACCESS)
            if not decision:
                return decision

        try:
            self.grants.revoke(grant_id, revoked_by or SYSTEM_ACTOR)
        except GrantNotFoundError:
            return self._deny(revoked_by, "grant", grant_id, DecisionReason.NOT_FOUND)
        except GrantAlreadyRevokedError:
            return self._deny(revoked_by, "grant", grant_id, DecisionReason.ALREADY_REVOKED)
        return Decision.allow(decision.reason, reference=grant_id)

    def find_dangling_grants(self) -> Iterator[Grant]:
        """Active grants whose scope no longer exists, for periodic cleanup."""
        graph = self.graph.current
        for principal_id in sorted(self.identity.principal_ids()):
            for grant in self.grants.active_grants_of(principal_id):
                if graph.kind_of(grant.scope_id) is not grant.scope_kind:
                    yield grant

    # -- roles -------------------------------------------------------------

    def assign_role(
        self, principal_id: str, role: Union[Role, str], assigned_by: str
    ) -> Decision:
        """Assign a role; ``reference`` carries the assignment id."""
        try:
            role = parse_role(role) if not isinstance(role, Role) else role
        except ValueError:
            return self._deny(assigned_by, "principal", principal_id, DecisionReason.INVALID_REQUEST)

        decision = self.decide(
            assigned_by, Resource.principal(principal_id), Action.ASSIGN_ROLE, target_role=role
        )
        if not decision:
            return decision

        assignment = self.identity.assign_role(principal_id, role, assigned_by)
        return Decision.allow(decision.reason, reference=assignment.id)

    def revoke_role(
        self,
        principal_id: str,
        role: Union[Role, str],
        revoked_by: Optional[str] = None,
    ) -> Decision:
        """Revoke a role. ``revoked_by=None`` is a trusted system call."""
        try:
            role = parse_role(role) if not isinstance(role, Role) else role
        except ValueError:
            return self._deny(revoked_by, "principal", principal_id, DecisionReason.INVALID_REQUEST)

        decision = Decision.allow(DecisionReason.SUPER_ADMIN)
        if revoked_by is not None:
            decision = self.decide(
                revoked_by, Resource.principal(principal_id), Action.ASSIGN_ROLE, target_role=role
            )
            if not decision:
                return decision

        try:
            assignment = self.identity.revoke_role(principal_id, role, revoked_by or SYSTEM_ACTOR)
        except RoleAssignmentNotFoundError:
            return self._deny(revoked_by, "principal", principal_id, DecisionReason.NOT_FOUND)
        return Decision.allow(decision.reason, reference=assignment.id)

    def _grant_manager_denial(
        self, ctx: RequestContext, actor_id: str, resource_type: str, resource_id: str
    ) -> Optional[Decision]:
        """Deny unless the actor holds a role allowed to manage grants."""
        try:
            roles = ctx.resolver.facts_for(actor_id).roles
        except DeadlineExceeded as e:
            logger.error(f"Failing closed for {actor_id}: {e}")
            return self._deny(actor_id, resource_type, resource_id, DecisionReason.TIMEOUT)
        except Exception:
            logger.exception(f"Fact lookup failed for {actor_id}; failing closed")
            return self._deny(actor_id, resource_type, resource_id, DecisionReason.FACT_ERROR)
        if roles & GRANT_MANAGER_ROLES:
            return None
        return self._deny(actor_id, resource_type, resource_id, DecisionReason.ROLE_FORBIDS)

    def _deny(
        self,
        actor_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str],
        reason: DecisionReason,
    ) -> Decision:
        decision = Decision.deny(reason)
        self.auditor.record(actor_id or SYSTEM_ACTOR, "write", resource_type, resource_id, decision)
        return decision


def _grant_target(grant: Grant) -> Resource:
    if grant.scope_kind is ScopeKind.STORE:
        return Resource.store(grant.scope_id)
    return Resource.department(grant.scope_id)
