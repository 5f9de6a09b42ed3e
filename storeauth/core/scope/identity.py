"""Identity & Role Store.

Holds principal records (home placement, reports-to, person attributes)
and the append-only trail of role assignments. A pure fact provider: it
never consults the resolver or the decision engine.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional

from storeauth.common.logger import get_logger
from storeauth.core.errors import ManagerChainCycleError, RoleAssignmentNotFoundError
from storeauth.core.locks import KeyedLocks
from storeauth.core.rbac.roles import Role
from storeauth.core.snapshots import SnapshotHolder

logger = get_logger("identity")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Principal:
    """An authenticated actor and its person-record attributes."""

    id: str
    full_name: str = ""
    email: Optional[str] = None
    home_store_id: Optional[str] = None
    home_group_id: Optional[str] = None
    reports_to: Optional[str] = None
    birthday_month: Optional[int] = None
    birthday_day: Optional[int] = None
    start_month: Optional[int] = None
    start_year: Optional[int] = None
    last_sign_in_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Principal":
        return cls(
            id=str(data["id"]),
            full_name=data.get("full_name") or "",
            email=data.get("email"),
            home_store_id=data.get("home_store_id"),
            home_group_id=data.get("home_group_id"),
            reports_to=data.get("reports_to"),
            birthday_month=data.get("birthday_month"),
            birthday_day=data.get("birthday_day"),
            start_month=data.get("start_month"),
            start_year=data.get("start_year"),
            last_sign_in_at=data.get("last_sign_in_at"),
        )


@dataclass(frozen=True)
class RoleAssignment:
    """One assignment of a role; revocation stamps it, never deletes it."""

    id: str
    principal_id: str
    role: Role
    assigned_by: Optional[str]
    assigned_at: datetime
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


def check_manager_chain(reports_to: Mapping[str, Optional[str]]) -> None:
    """Raise ManagerChainCycleError if any reports-to chain loops.

    Args:
        reports_to: principal id -> manager id (or None)
    """
    cleared: set = set()
    for start in reports_to:
        path: List[str] = []
        on_path: set = set()
        current: Optional[str] = start
        while current is not None and current not in cleared:
            if current in on_path:
                raise ManagerChainCycleError(current, path + [current])
            on_path.add(current)
            path.append(current)
            current = reports_to.get(current)
        cleared.update(on_path)


class ManagerChainHolder(SnapshotHolder[Dict[str, Optional[str]]]):
    """Last-known-good reports-to chain for stores that read principals live.

    Each refresh validates the whole chain, so a cycle introduced in the
    backing store is rejected before it is served.
    """

    label = "manager chain snapshot"

    def __init__(
        self,
        reports_to: Optional[Mapping[str, Optional[str]]] = None,
        loader: Optional[Callable[[], Mapping[str, Optional[str]]]] = None,
    ):
        super().__init__({}, loader)
        if reports_to is not None:
            self.load(reports_to)

    def build(self, reports_to: Mapping[str, Optional[str]]) -> Dict[str, Optional[str]]:
        chain = {str(pid): (str(mgr) if mgr else None) for pid, mgr in reports_to.items()}
        check_manager_chain(chain)
        return chain

    def describe(self, chain: Dict[str, Optional[str]]) -> str:
        return f"manager chain for {len(chain)} principals"

    def reports_to_of(self, principal_id: str, fallback: Optional[str] = None) -> Optional[str]:
        """Validated manager; ``fallback`` for principals newer than the snapshot.

        Until a snapshot has been accepted nobody has a manager, and while
        the latest one is rejected principals outside the served snapshot
        have none either.
        """
        if self.loaded_at is None:
            return None
        if principal_id in self.current:
            return self.current[principal_id]
        return fallback if self.last_error is None else None


class IdentityStore(ABC):
    """Read interface (plus audited role writes) over principals and roles."""

    @abstractmethod
    def principal(self, principal_id: str) -> Optional[Principal]:
        """Return the principal record, or None if unknown."""

    @abstractmethod
    def principal_ids(self) -> FrozenSet[str]:
        """Every known principal id."""

    @abstractmethod
    def roles_of(self, principal_id: str) -> FrozenSet[Role]:
        """Active roles; the empty set for unknown principals."""

    @abstractmethod
    def assignments_of(self, principal_id: str) -> List[RoleAssignment]:
        """Full assignment trail, active and revoked, oldest first."""

    @abstractmethod
    def assign_role(
        self, principal_id: str, role: Role, assigned_by: Optional[str]
    ) -> RoleAssignment:
        """Record an assignment; returns the existing one if already active."""

    @abstractmethod
    def revoke_role(
        self, principal_id: str, role: Role, revoked_by: Optional[str] = None
    ) -> RoleAssignment:
        """Stamp the active assignment as revoked.

        Raises:
            RoleAssignmentNotFoundError: no active assignment exists
        """

    def has_role(self, principal_id: str, role: Role) -> bool:
        return role in self.roles_of(principal_id)

    def reports_to(self, principal_id: str) -> Optional[str]:
        principal = self.principal(principal_id)
        return principal.reports_to if principal else None


class InMemoryIdentityStore(IdentityStore):
    """Process-local identity store.

    Role changes for the same (principal, role) key are serialized so at
    most one assignment per key is ever active.
    """

    def __init__(
        self,
        principals: Iterable[Principal] = (),
        assignments: Iterable[RoleAssignment] = (),
    ):
        self._lock = threading.RLock()
        self._key_locks = KeyedLocks()
        self._principals: Dict[str, Principal] = {}
        self._assignments: Dict[str, List[RoleAssignment]] = {}
        self.last_error: Optional[ManagerChainCycleError] = None

        principals = list(principals)
        if principals and not self.load_principals(principals):
            raise self.last_error
        for assignment in assignments:
            self._assignments.setdefault(assignment.principal_id, []).append(assignment)

    def load_principals(self, principals: Iterable[Principal]) -> bool:
        """Replace the principal directory after validating reports-to chains.

        Returns False (keeping the previous directory) if a cycle is found.
        """
        by_id = {p.id: p for p in principals}
        try:
            check_manager_chain({pid: p.reports_to for pid, p in by_id.items()})
        except ManagerChainCycleError as e:
            self.last_error = e
            logger.critical(f"Rejected principal snapshot, keeping last-known-good: {e}")
            return False

        with self._lock:
            self._principals = by_id
            self.last_error = None
        return True

    def principal(self, principal_id: str) -> Optional[Principal]:
        return self._principals.get(principal_id)

    def principal_ids(self) -> FrozenSet[str]:
        return frozenset(self._principals)

    def roles_of(self, principal_id: str) -> FrozenSet[Role]:
        with self._lock:
            return frozenset(
                a.role for a in self._assignments.get(principal_id, ()) if a.is_active
            )

    def assignments_of(self, principal_id: str) -> List[RoleAssignment]:
        with self._lock:
            return list(self._assignments.get(principal_id, ()))

    def _active(self, principal_id: str, role: Role) -> Optional[RoleAssignment]:
        for a in self._assignments.get(principal_id, ()):
            if a.role is role and a.is_active:
                return a
        return None

    def assign_role(
        self, principal_id: str, role: Role, assigned_by: Optional[str]
    ) -> RoleAssignment:
        with self._key_locks.hold((principal_id, role)):
            with self._lock:
                existing = self._active(principal_id, role)
                if existing:
                    return existing
                assignment = RoleAssignment(
                    id=str(uuid.uuid4()),
                    principal_id=principal_id,
                    role=role,
                    assigned_by=assigned_by,
                    assigned_at=utcnow(),
                )
                self._assignments.setdefault(principal_id, []).append(assignment)
        logger.info(f"Assigned {role.value} to {principal_id} by {assigned_by}")
        return assignment

    def revoke_role(
        self, principal_id: str, role: Role, revoked_by: Optional[str] = None
    ) -> RoleAssignment:
        with self._key_locks.hold((principal_id, role)):
            with self._lock:
                trail = self._assignments.get(principal_id, [])
                for i, a in enumerate(trail):
                    if a.role is role and a.is_active:
                        revoked = replace(a, revoked_at=utcnow(), revoked_by=revoked_by)
                        trail[i] = revoked
                        break
                else:
                    raise RoleAssignmentNotFoundError(principal_id, role.value)
        logger.info(f"Revoked {role.value} from {principal_id} by {revoked_by}")
        return revoked
