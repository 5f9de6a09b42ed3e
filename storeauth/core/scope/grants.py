"""Grant Store: explicit, auditable (principal, store|department) edges.

Grants only widen scope. They are append-only: revoking stamps the grant
as inactive and keeps it for the audit trail.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from storeauth.common.logger import get_logger
from storeauth.core.errors import GrantAlreadyRevokedError, GrantNotFoundError
from storeauth.core.locks import KeyedLocks
from storeauth.core.scope.graph import ScopeKind

logger = get_logger("grants")

GRANTABLE_KINDS = frozenset([ScopeKind.STORE, ScopeKind.DEPARTMENT])


@dataclass(frozen=True)
class Grant:
    """An explicit scope grant with its audit metadata."""

    id: str
    principal_id: str
    scope_kind: ScopeKind
    scope_id: str
    granted_by: Optional[str]
    granted_at: datetime
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None

    @property
    def key(self) -> tuple:
        return (self.principal_id, self.scope_kind, self.scope_id)


def check_grant_kind(scope_kind: ScopeKind) -> ScopeKind:
    scope_kind = ScopeKind(scope_kind)
    if scope_kind not in GRANTABLE_KINDS:
        raise ValueError(f"Grants attach to stores or departments, not {scope_kind.value}")
    return scope_kind


class GrantStore(ABC):
    """Fact provider for explicit grants (``loadGrants``)."""

    @abstractmethod
    def get(self, grant_id: str) -> Optional[Grant]:
        """Return a grant by id, active or revoked."""

    @abstractmethod
    def active_grants_of(self, principal_id: str) -> List[Grant]:
        """Active grants held by a principal."""

    @abstractmethod
    def history(self, principal_id: str) -> List[Grant]:
        """Every grant ever issued to a principal, oldest first."""

    @abstractmethod
    def grant(
        self,
        principal_id: str,
        scope_kind: ScopeKind,
        scope_id: str,
        granted_by: Optional[str],
    ) -> Grant:
        """Create a grant, or return the active one for the same key."""

    @abstractmethod
    def revoke(self, grant_id: str, revoked_by: Optional[str] = None) -> Grant:
        """Mark a grant revoked.

        Raises:
            GrantNotFoundError: unknown grant id
            GrantAlreadyRevokedError: the grant was already revoked
        """

    def store_grants_of(self, principal_id: str) -> FrozenSet[str]:
        return frozenset(
            g.scope_id for g in self.active_grants_of(principal_id)
            if g.scope_kind is ScopeKind.STORE
        )

    def department_grants_of(self, principal_id: str) -> FrozenSet[str]:
        return frozenset(
            g.scope_id for g in self.active_grants_of(principal_id)
            if g.scope_kind is ScopeKind.DEPARTMENT
        )


class InMemoryGrantStore(GrantStore):
    """Process-local grant store with per-key serialization."""

    def __init__(self, grants: Iterable[Grant] = ()):
        self._lock = threading.RLock()
        self._key_locks = KeyedLocks()
        self._grants: Dict[str, Grant] = {}
        self._by_principal: Dict[str, List[str]] = {}
        for g in grants:
            self._put(g)

    def _put(self, grant: Grant) -> None:
        if grant.id not in self._grants:
            self._by_principal.setdefault(grant.principal_id, []).append(grant.id)
        self._grants[grant.id] = grant

    def get(self, grant_id: str) -> Optional[Grant]:
        return self._grants.get(grant_id)

    def active_grants_of(self, principal_id: str) -> List[Grant]:
        return [g for g in self.history(principal_id) if g.is_active]

    def history(self, principal_id: str) -> List[Grant]:
        with self._lock:
            return [self._grants[gid] for gid in self._by_principal.get(principal_id, ())]

    def grant(
        self,
        principal_id: str,
        scope_kind: ScopeKind,
        scope_id: str,
        granted_by: Optional[str],
    ) -> Grant:
        scope_kind = check_grant_kind(scope_kind)
        key = (principal_id, scope_kind, scope_id)
        with self._key_locks.hold(key):
            with self._lock:
                for g in self.active_grants_of(principal_id):
                    if g.key == key:
                        return g
                grant = Grant(
                    id=str(uuid.uuid4()),
                    principal_id=principal_id,
                    scope_kind=scope_kind,
                    scope_id=scope_id,
                    granted_by=granted_by,
                    granted_at=datetime.now(timezone.utc),
                )
                self._put(grant)
        logger.info(
            f"Granted {scope_kind.value} {scope_id} to {principal_id} by {granted_by}"
        )
        return grant

    def revoke(self, grant_id: str, revoked_by: Optional[str] = None) -> Grant:
        existing = self.get(grant_id)
        if existing is None:
            raise GrantNotFoundError(grant_id)

        with self._key_locks.hold(existing.key):
            with self._lock:
                current = self._grants[grant_id]
                if not current.is_active:
                    raise GrantAlreadyRevokedError(grant_id)
                revoked = replace(
                    current,
                    revoked_at=datetime.now(timezone.utc),
                    revoked_by=revoked_by,
                )
                self._put(revoked)
        logger.info(f"Revoked grant {grant_id} by {revoked_by}")
        return revoked
