"""Scope Resolver: the single authority for what a principal can see.

Three sources are combined with plain set union, each computed only from
raw facts (roles, tree, grants) and never from another source's output:

1. Role-derived broad scope: super admin is universal; group managers and
   controllers get every store and department in their effective group.
2. Hierarchy-derived narrow scope: department and operations managers get
   the departments they are designated manager of, plus the owning stores
   as containers.
3. Explicit grants: a store grant covers the store and all its departments;
   a department grant covers the department and its store as a container.

A resolver instance lives for one request. Scopes are memoized per
principal inside it and never shared across requests.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from storeauth.common.logger import get_logger
from storeauth.core.deadline import Deadline
from storeauth.core.rbac.roles import BROAD_SCOPE_ROLES, NARROW_SCOPE_ROLES, Role
from storeauth.core.scope.grants import GrantStore
from storeauth.core.scope.graph import ScopeGraph, ScopeKind
from storeauth.core.scope.identity import IdentityStore, Principal

logger = get_logger("resolver")

EMPTY: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ResolvedScope:
    """Concrete ids a principal may act within."""

    is_universal: bool = False
    group_ids: FrozenSet[str] = EMPTY
    store_ids: FrozenSet[str] = EMPTY
    container_store_ids: FrozenSet[str] = EMPTY
    department_ids: FrozenSet[str] = EMPTY

    def __or__(self, other: "ResolvedScope") -> "ResolvedScope":
        return ResolvedScope(
            is_universal=self.is_universal or other.is_universal,
            group_ids=self.group_ids | other.group_ids,
            store_ids=self.store_ids | other.store_ids,
            container_store_ids=self.container_store_ids | other.container_store_ids,
            department_ids=self.department_ids | other.department_ids,
        )

    @property
    def visible_store_ids(self) -> FrozenSet[str]:
        return self.store_ids | self.container_store_ids

    @property
    def is_empty(self) -> bool:
        return not (
            self.is_universal
            or self.group_ids
            or self.store_ids
            or self.container_store_ids
            or self.department_ids
        )

    def is_subset_of(self, other: "ResolvedScope") -> bool:
        if other.is_universal:
            return True
        if self.is_universal:
            return False
        return (
            self.group_ids <= other.group_ids
            and self.store_ids <= other.store_ids
            and self.container_store_ids <= other.visible_store_ids
            and self.department_ids <= other.department_ids
        )


UNIVERSAL = ResolvedScope(is_universal=True)
NO_SCOPE = ResolvedScope()


@dataclass(frozen=True)
class PrincipalFacts:
    """Raw facts about one principal, read once per decision."""

    principal_id: str
    principal: Optional[Principal] = None
    roles: FrozenSet[Role] = frozenset()
    store_grants: FrozenSet[str] = EMPTY
    department_grants: FrozenSet[str] = EMPTY

    @property
    def is_known(self) -> bool:
        return self.principal is not None or bool(self.roles)


@dataclass(frozen=True)
class DanglingGrant:
    principal_id: str
    scope_kind: ScopeKind
    scope_id: str


class ScopeResolver:
    """Resolves scopes against one graph snapshot for one request."""

    def __init__(
        self,
        graph: ScopeGraph,
        identity: IdentityStore,
        grants: GrantStore,
        deadline: Optional[Deadline] = None,
    ):
        self.graph = graph
        self.identity = identity
        self.grants = grants
        self.deadline = deadline or Deadline.never()
        self.dangling_grants: List[DanglingGrant] = []
        self._facts: Dict[str, PrincipalFacts] = {}
        self._scopes: Dict[str, ResolvedScope] = {}

    def facts_for(self, principal_id: str) -> PrincipalFacts:
        """Read a consistent fact set for the principal (memoized)."""
        facts = self._facts.get(principal_id)
        if facts is None:
            self.deadline.check("role lookup")
            principal = self.identity.principal(principal_id)
            roles = self.identity.roles_of(principal_id)
            self.deadline.check("grant lookup")
            facts = PrincipalFacts(
                principal_id=principal_id,
                principal=principal,
                roles=frozenset(roles),
                store_grants=frozenset(self.grants.store_grants_of(principal_id)),
                department_grants=frozenset(self.grants.department_grants_of(principal_id)),
            )
            self._facts[principal_id] = facts
        return facts

    def resolve(self, principal_id: str) -> ResolvedScope:
        scope = self._scopes.get(principal_id)
        if scope is None:
            scope = self.resolve_facts(self.facts_for(principal_id))
            self._scopes[principal_id] = scope
        return scope

    def resolve_facts(self, facts: PrincipalFacts) -> ResolvedScope:
        scope = (
            self._role_scope(facts)
            | self._hierarchy_scope(facts)
            | self._grant_scope(facts)
        )
        self.deadline.check("scope resolution")
        return scope

    def effective_group(self, facts: PrincipalFacts) -> Optional[str]:
        if facts.principal is None:
            return None
        return self.graph.effective_home_group(
            facts.principal.home_group_id, facts.principal.home_store_id
        )

    # -- sources ---------------------------------------------------------

    def _role_scope(self, facts: PrincipalFacts) -> ResolvedScope:
        if Role.SUPER_ADMIN in facts.roles:
            return UNIVERSAL
        if not facts.roles & BROAD_SCOPE_ROLES:
            return NO_SCOPE

        group_id = self.effective_group(facts)
        if self.graph.kind_of(group_id) is not ScopeKind.GROUP:
            logger.debug(f"{facts.principal_id} has a group-wide role but no effective group")
            return NO_SCOPE

        stores = self.graph.stores_of(group_id)
        departments = frozenset(d for s in stores for d in self.graph.departments_of(s))
        return ResolvedScope(
            group_ids=frozenset([group_id]),
            store_ids=stores,
            department_ids=departments,
        )

    def _hierarchy_scope(self, facts: PrincipalFacts) -> ResolvedScope:
        if not facts.roles & NARROW_SCOPE_ROLES:
            return NO_SCOPE

        departments = self.graph.departments_managed_by(facts.principal_id)
        containers = frozenset(
            s for s in (self.graph.store_of(d) for d in departments) if s is not None
        )
        return ResolvedScope(container_store_ids=containers, department_ids=departments)

    def _grant_scope(self, facts: PrincipalFacts) -> ResolvedScope:
        stores = set()
        containers = set()
        departments = set()

        for store_id in facts.store_grants:
            if self.graph.kind_of(store_id) is not ScopeKind.STORE:
                self._dangling(facts.principal_id, ScopeKind.STORE, store_id)
                continue
            stores.add(store_id)
            departments.update(self.graph.departments_of(store_id))

        for dept_id in facts.department_grants:
            if self.graph.kind_of(dept_id) is not ScopeKind.DEPARTMENT:
                self._dangling(facts.principal_id, ScopeKind.DEPARTMENT, dept_id)
                continue
            departments.add(dept_id)
            store_id = self.graph.store_of(dept_id)
            if store_id is not None:
                containers.add(store_id)

        return ResolvedScope(
            store_ids=frozenset(stores),
            container_store_ids=frozenset(containers),
            department_ids=frozenset(departments),
        )

    def _dangling(self, principal_id: str, kind: ScopeKind, scope_id: str) -> None:
        self.dangling_grants.append(DanglingGrant(principal_id, kind, scope_id))
        logger.warning(
            f"Dangling {kind.value} grant for {principal_id} -> {scope_id}; "
            f"excluded from scope, flagged for cleanup"
        )
