"""SQLAlchemy-backed fact providers.

Adapts the relational tables to the IdentityStore and GrantStore
interfaces, and reads the organization tree into a scope graph snapshot.
Uniqueness of active role assignments and grants is enforced by partial
unique indexes; a lost insert race returns the row that won.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storeauth.common.logger import get_logger
from storeauth.core.audit import AuditEntry
from storeauth.core.errors import (
    GrantAlreadyRevokedError,
    GrantNotFoundError,
    RoleAssignmentNotFoundError,
)
from storeauth.core.rbac.roles import Role
from storeauth.core.scope.grants import Grant, GrantStore, check_grant_kind
from storeauth.core.scope.graph import ScopeKind
from storeauth.core.scope.identity import IdentityStore, ManagerChainHolder, Principal, RoleAssignment
from storeauth.db.models import AccessGrant, AuditLog, Department, Profile, Store, StoreGroup, UserRole

logger = get_logger("db.stores")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def load_scope_graph(db: Session) -> Dict[str, List[Dict[str, Any]]]:
    """Read the organization tree as a ScopeGraph snapshot."""
    return {
        "groups": [
            {"id": g.id, "name": g.name}
            for g in db.query(StoreGroup).all()
        ],
        "stores": [
            {"id": s.id, "name": s.name, "group_id": s.group_id}
            for s in db.query(Store).all()
        ],
        "departments": [
            {
                "id": d.id,
                "name": d.name,
                "store_id": d.store_id,
                "manager_id": d.manager_id,
                "department_type": d.department_type,
            }
            for d in db.query(Department).all()
        ],
    }


def snapshot_loader(session_factory: Callable[[], Session]) -> Callable[[], Mapping[str, Any]]:
    """Loader for ScopeGraphHolder that reads through a short-lived session."""

    def load() -> Mapping[str, Any]:
        db = session_factory()
        try:
            return load_scope_graph(db)
        finally:
            db.close()

    return load


def load_manager_chain(db: Session) -> Dict[str, Optional[str]]:
    """Read every profile's reports-to as a manager chain snapshot."""
    return {pid: reports_to for pid, reports_to in db.query(Profile.id, Profile.reports_to).all()}


def manager_chain_loader(
    session_factory: Callable[[], Session],
) -> Callable[[], Dict[str, Optional[str]]]:
    """Loader for ManagerChainHolder that reads through a short-lived session."""

    def load() -> Dict[str, Optional[str]]:
        db = session_factory()
        try:
            return load_manager_chain(db)
        finally:
            db.close()

    return load


def _to_principal(row: Profile) -> Principal:
    return Principal(
        id=row.id,
        full_name=row.full_name or "",
        email=row.email,
        home_store_id=row.store_id,
        home_group_id=row.store_group_id,
        reports_to=row.reports_to,
        birthday_month=row.birthday_month,
        birthday_day=row.birthday_day,
        start_month=row.start_month,
        start_year=row.start_year,
        last_sign_in_at=row.last_sign_in_at,
    )


def _to_assignment(row: UserRole) -> RoleAssignment:
    return RoleAssignment(
        id=row.id,
        principal_id=row.user_id,
        role=Role(row.role),
        assigned_by=row.assigned_by,
        assigned_at=row.assigned_at,
        revoked_at=row.revoked_at,
        revoked_by=row.revoked_by,
    )


def _to_grant(row: AccessGrant) -> Grant:
    return Grant(
        id=row.id,
        principal_id=row.user_id,
        scope_kind=ScopeKind(row.scope_type),
        scope_id=row.scope_id,
        granted_by=row.granted_by,
        granted_at=row.granted_at,
        revoked_at=row.revoked_at,
        revoked_by=row.revoked_by,
    )


class SqlIdentityStore(IdentityStore):
    """Identity & role facts from ``profiles`` and ``user_roles``.

    With a ``manager_chain`` holder, reports-to comes from its validated
    snapshot; rows added since the last refresh fall back to their own
    column.
    """

    def __init__(self, db: Session, manager_chain: Optional[ManagerChainHolder] = None):
        self.db = db
        self.manager_chain = manager_chain

    def principal(self, principal_id: str) -> Optional[Principal]:
        row = self.db.get(Profile, principal_id)
        if row is None:
            return None
        principal = _to_principal(row)
        if self.manager_chain is not None:
            principal = replace(
                principal,
                reports_to=self.manager_chain.reports_to_of(principal_id, principal.reports_to),
            )
        return principal

    def principal_ids(self) -> FrozenSet[str]:
        return frozenset(pid for (pid,) in self.db.query(Profile.id).all())

    def _active_row(self, principal_id: str, role: Role) -> Optional[UserRole]:
        return self.db.query(UserRole).filter(
            and_(
                UserRole.user_id == principal_id,
                UserRole.role == role.value,
                UserRole.revoked_at.is_(None),
            )
        ).first()

    def roles_of(self, principal_id: str) -> FrozenSet[Role]:
        rows = self.db.query(UserRole.role).filter(
            and_(UserRole.user_id == principal_id, UserRole.revoked_at.is_(None))
        ).all()
        roles = set()
        for (value,) in rows:
            try:
                roles.add(Role(value))
            except ValueError:
                logger.warning(f"Ignoring unknown role {value!r} on {principal_id}")
        return frozenset(roles)

    def assignments_of(self, principal_id: str) -> List[RoleAssignment]:
        rows = self.db.query(UserRole).filter(
            UserRole.user_id == principal_id
        ).order_by(UserRole.assigned_at).all()
        return [_to_assignment(r) for r in rows]

    def assign_role(
        self, principal_id: str, role: Role, assigned_by: Optional[str]
    ) -> RoleAssignment:
        existing = self._active_row(principal_id, role)
        if existing:
            return _to_assignment(existing)

        row = UserRole(
            user_id=principal_id,
            role=role.value,
            assigned_by=assigned_by,
            assigned_at=_now(),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._active_row(principal_id, role)
            if existing is None:
                raise
            return _to_assignment(existing)

        self.db.refresh(row)
        logger.info(f"Assigned {role.value} to {principal_id} by {assigned_by}")
        return _to_assignment(row)

    def revoke_role(
        self, principal_id: str, role: Role, revoked_by: Optional[str] = None
    ) -> RoleAssignment:
        row = self._active_row(principal_id, role)
        if row is None:
            raise RoleAssignmentNotFoundError(principal_id, role.value)

        updated = self.db.query(UserRole).filter(
            and_(UserRole.id == row.id, UserRole.revoked_at.is_(None))
        ).update(
            {UserRole.revoked_at: _now(), UserRole.revoked_by: revoked_by},
            synchronize_session=False,
        )
        self.db.commit()
        if updated == 0:
            raise RoleAssignmentNotFoundError(principal_id, role.value)

        self.db.refresh(row)
        logger.info(f"Revoked {role.value} from {principal_id} by {revoked_by}")
        return _to_assignment(row)


class SqlGrantStore(GrantStore):
    """Grant facts from ``access_grants``."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, grant_id: str) -> Optional[Grant]:
        row = self.db.get(AccessGrant, grant_id)
        return _to_grant(row) if row else None

    def active_grants_of(self, principal_id: str) -> List[Grant]:
        rows = self.db.query(AccessGrant).filter(
            and_(AccessGrant.user_id == principal_id, AccessGrant.revoked_at.is_(None))
        ).order_by(AccessGrant.granted_at).all()
        return [_to_grant(r) for r in rows]

    def history(self, principal_id: str) -> List[Grant]:
        rows = self.db.query(AccessGrant).filter(
            AccessGrant.user_id == principal_id
        ).order_by(AccessGrant.granted_at).all()
        return [_to_grant(r) for r in rows]

    def _active_row(self, principal_id: str, scope_kind: ScopeKind, scope_id: str) -> Optional[AccessGrant]:
        return self.db.query(AccessGrant).filter(
            and_(
                AccessGrant.user_id == principal_id,
                AccessGrant.scope_type == scope_kind.value,
                AccessGrant.scope_id == scope_id,
                AccessGrant.revoked_at.is_(None),
            )
        ).first()

    def grant(
        self,
        principal_id: str,
        scope_kind: ScopeKind,
        scope_id: str,
        granted_by: Optional[str],
    ) -> Grant:
        scope_kind = check_grant_kind(scope_kind)
        existing = self._active_row(principal_id, scope_kind, scope_id)
        if existing:
            return _to_grant(existing)

        row = AccessGrant(
            user_id=principal_id,
            scope_type=scope_kind.value,
            scope_id=scope_id,
            granted_by=granted_by,
            granted_at=_now(),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._active_row(principal_id, scope_kind, scope_id)
            if existing is None:
                raise
            return _to_grant(existing)

        self.db.refresh(row)
        logger.info(f"Granted {scope_kind.value} {scope_id} to {principal_id} by {granted_by}")
        return _to_grant(row)

    def revoke(self, grant_id: str, revoked_by: Optional[str] = None) -> Grant:
        row = self.db.get(AccessGrant, grant_id)
        if row is None:
            raise GrantNotFoundError(grant_id)

        # Conditional update: only one concurrent revoke can win
        updated = self.db.query(AccessGrant).filter(
            and_(AccessGrant.id == grant_id, AccessGrant.revoked_at.is_(None))
        ).update(
            {AccessGrant.revoked_at: _now(), AccessGrant.revoked_by: revoked_by},
            synchronize_session=False,
        )
        self.db.commit()
        if updated == 0:
            raise GrantAlreadyRevokedError(grant_id)

        self.db.refresh(row)
        logger.info(f"Revoked grant {grant_id} by {revoked_by}")
        return _to_grant(row)


class SqlAuditSink:
    """Audit sink that persists entries to ``audit_logs``."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def __call__(self, entry: AuditEntry) -> None:
        db = self.session_factory()
        try:
            db.add(AuditLog.create_entry(
                user_id=entry.actor_id,
                action=entry.action,
                resource_type=entry.resource_type,
                effect=entry.effect,
                reason=entry.reason,
                resource_id=entry.resource_id,
                details=entry.details,
                severity=entry.severity,
                created_at=entry.created_at,
            ))
            db.commit()
        finally:
            db.close()
