"""SQLAlchemy store tests against an in-memory sqlite database."""

import logging

import pytest

from storeauth.core.audit import DecisionAuditor
from storeauth.core.errors import (
    GrantAlreadyRevokedError,
    GrantNotFoundError,
    ManagerChainCycleError,
    RoleAssignmentNotFoundError,
)
from storeauth.core.policy.engine import DecisionReason, Resource
from storeauth.core.rbac.permissions import Action
from storeauth.core.rbac.roles import Role
from storeauth.core.scope.graph import ScopeGraphHolder, ScopeKind
from storeauth.core.scope.identity import ManagerChainHolder
from storeauth.core.service import AuthorizationService
from storeauth.db.models import AccessGrant, AuditLog, Profile, UserRole
from storeauth.db.stores import (
    SqlAuditSink,
    SqlGrantStore,
    SqlIdentityStore,
    load_manager_chain,
    load_scope_graph,
    manager_chain_loader,
    snapshot_loader,
)
from tests.factories import create_department, create_group, create_profile, create_store


pytestmark = [pytest.mark.integration]


@pytest.fixture
def org(db_session):
    """Two groups; U1 manages D1 in S1."""
    g1 = create_group(db_session, id="G1", name="North Auto Group")
    g2 = create_group(db_session, id="G2", name="South Motors")
    s1 = create_store(db_session, group=g1, id="S1")
    s2 = create_store(db_session, group=g1, id="S2")
    s3 = create_store(db_session, group=g2, id="S3")

    gm1 = create_profile(db_session, id="gm1", group=g1, roles=["group_manager"])
    u1 = create_profile(db_session, id="U1", store=s1, reports_to=gm1, roles=["department_manager"])
    create_profile(db_session, id="U2", store=s2, roles=["read_only"])
    create_profile(db_session, id="U3", store=s3, roles=["read_only"])

    create_department(db_session, store=s1, id="D1", manager=u1)
    create_department(db_session, store=s1, id="D2", department_type="sales")
    create_department(db_session, store=s2, id="D5", department_type="sales")
    create_department(db_session, store=s3, id="D6")
    db_session.commit()
    return db_session


class TestScopeGraphSnapshot:

    def test_load_scope_graph(self, org):
        holder = ScopeGraphHolder()
        assert holder.load(load_scope_graph(org))

        graph = holder.current
        assert graph.stores_of("G1") == {"S1", "S2"}
        assert graph.departments_managed_by("U1") == {"D1"}

    def test_snapshot_loader(self, org, session_factory):
        holder = ScopeGraphHolder(loader=snapshot_loader(session_factory))
        assert holder.refresh()
        assert holder.current.store_of("D6") == "S3"


class TestSqlIdentityStore:

    def test_principal(self, org):
        identity = SqlIdentityStore(org)
        u1 = identity.principal("U1")
        assert u1.home_store_id == "S1"
        assert u1.reports_to == "gm1"
        assert identity.principal("ghost") is None
        assert identity.principal_ids() == {"gm1", "U1", "U2", "U3"}

    def test_roles(self, org):
        identity = SqlIdentityStore(org)
        assert identity.roles_of("U1") == {Role.DEPARTMENT_MANAGER}
        assert identity.roles_of("ghost") == frozenset()

    def test_unknown_role_values_ignored(self, org):
        org.add(UserRole(user_id="U2", role="owner"))
        org.commit()
        assert SqlIdentityStore(org).roles_of("U2") == {Role.READ_ONLY}

    def test_assign_idempotent_and_revoke(self, org):
        identity = SqlIdentityStore(org)
        first = identity.assign_role("U2", Role.SCHEDULER, "gm1")
        second = identity.assign_role("U2", Role.SCHEDULER, "gm1")
        assert first.id == second.id

        revoked = identity.revoke_role("U2", Role.SCHEDULER, "gm1")
        assert revoked.revoked_at is not None
        assert Role.SCHEDULER not in identity.roles_of("U2")

        # Trail is kept
        rows = org.query(UserRole).filter(UserRole.user_id == "U2", UserRole.role == "scheduler").all()
        assert len(rows) == 1

        with pytest.raises(RoleAssignmentNotFoundError):
            identity.revoke_role("U2", Role.SCHEDULER, "gm1")

    def test_active_assignment_unique_index(self, org):
        """The database itself refuses a second active row."""
        from sqlalchemy.exc import IntegrityError

        org.add(UserRole(user_id="U1", role="department_manager"))
        with pytest.raises(IntegrityError):
            org.commit()
        org.rollback()


class TestSqlGrantStore:

    def test_grant_lifecycle(self, org):
        grants = SqlGrantStore(org)
        g = grants.grant("U1", ScopeKind.STORE, "S1", "gm1")
        assert grants.grant("U1", ScopeKind.STORE, "S1", "gm1").id == g.id
        assert grants.store_grants_of("U1") == {"S1"}

        revoked = grants.revoke(g.id, "gm1")
        assert revoked.revoked_by == "gm1"
        assert grants.active_grants_of("U1") == []
        assert len(grants.history("U1")) == 1

        with pytest.raises(GrantAlreadyRevokedError):
            grants.revoke(g.id, "gm1")

    def test_revoke_unknown(self, org):
        with pytest.raises(GrantNotFoundError):
            SqlGrantStore(org).revoke("missing")

    def test_group_grant_rejected(self, org):
        with pytest.raises(ValueError):
            SqlGrantStore(org).grant("U1", ScopeKind.GROUP, "G1", "admin")

    def test_grants_survive_scope_deletion(self, org):
        """No foreign key ties a grant to its scope."""
        grants = SqlGrantStore(org)
        grants.grant("U2", ScopeKind.DEPARTMENT, "D-gone", "gm1")
        assert org.query(AccessGrant).filter(AccessGrant.scope_id == "D-gone").count() == 1


class TestSqlBackedService:
    """The service over SQL facts."""

    @pytest.fixture
    def sql_service(self, org, session_factory):
        holder = ScopeGraphHolder(loader=snapshot_loader(session_factory))
        holder.refresh()
        auditor = DecisionAuditor(sinks=[SqlAuditSink(session_factory)])
        return AuthorizationService(holder, SqlIdentityStore(org), SqlGrantStore(org), auditor=auditor)

    def test_store_grant_example(self, sql_service):
        """D1 only, then D1-D2 with a store grant, then D1 again after revoke."""
        assert sql_service.resolved_scope("U1").department_ids == {"D1"}

        grant_id = sql_service.grant("U1", "S1", granted_by="gm1").reference
        assert sql_service.resolved_scope("U1").department_ids == {"D1", "D2"}

        assert sql_service.revoke(grant_id, revoked_by="gm1")
        assert sql_service.resolved_scope("U1").department_ids == {"D1"}

    def test_tenant_isolation(self, sql_service):
        assert not sql_service.decide("gm1", Resource.record("D6"), Action.READ)
        assert sql_service.decide("gm1", Resource.record("D5"), Action.UPDATE)

    def test_denies_persisted_to_audit_log(self, sql_service, org):
        sql_service.decide("U2", Resource.record("D5"), Action.UPDATE)

        rows = org.query(AuditLog).all()
        assert len(rows) == 1
        assert rows[0].user_id == "U2"
        assert rows[0].effect == "deny"
        assert rows[0].reason == DecisionReason.SCOPE_MISMATCH.value
        assert rows[0].severity == "warning"


class TestManagerChain:
    """Reports-to chains read from ``profiles`` are validated before use."""

    @pytest.fixture
    def chain(self, org, session_factory):
        holder = ManagerChainHolder(loader=manager_chain_loader(session_factory))
        assert holder.refresh()
        return holder

    def test_load_manager_chain(self, org):
        assert load_manager_chain(org) == {"gm1": None, "U1": "gm1", "U2": None, "U3": None}

    def test_reports_to_served_from_snapshot(self, org, chain):
        identity = SqlIdentityStore(org, chain)
        assert identity.reports_to("U1") == "gm1"
        assert identity.principal("U1").reports_to == "gm1"

    def test_cyclic_chain_rejected(self, org, chain, caplog):
        """A loop written to the table never reaches the field mask."""
        a = create_profile(org, id="a")
        b = create_profile(org, id="b", reports_to=a)
        a.reports_to = b.id
        org.commit()

        with caplog.at_level(logging.CRITICAL, logger="storeauth"):
            assert chain.refresh() is False

        assert isinstance(chain.last_error, ManagerChainCycleError)
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

        identity = SqlIdentityStore(org, chain)
        assert identity.reports_to("U1") == "gm1"
        assert identity.reports_to("a") is None
        assert identity.reports_to("b") is None

    def test_edit_creating_cycle_keeps_last_known_good(self, org, chain):
        gm1 = org.get(Profile, "gm1")
        gm1.reports_to = "U1"
        org.commit()

        assert not chain.refresh()
        assert SqlIdentityStore(org, chain).reports_to("gm1") is None

    def test_rejected_first_load_serves_no_managers(self, org, session_factory):
        gm1 = org.get(Profile, "gm1")
        gm1.reports_to = "U1"
        org.commit()

        holder = ManagerChainHolder(loader=manager_chain_loader(session_factory))
        assert not holder.refresh()
        assert SqlIdentityStore(org, holder).reports_to("U1") is None

    def test_rejection_counts_toward_freshness(self, org, chain):
        org.get(Profile, "gm1").reports_to = "U1"
        org.commit()

        assert not chain.refresh()
        assert not chain.is_stale(60)
        assert chain.is_stale(-1)
