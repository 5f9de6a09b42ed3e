"""Tests for the authorization service facade."""

import pytest

from storeauth.core.audit import AuditSeverity, DecisionAuditor
from storeauth.core.policy.engine import DecisionReason, Resource
from storeauth.core.rbac.permissions import Action, ResourceType
from storeauth.core.rbac.roles import Role
from storeauth.core.scope.graph import ScopeKind
from storeauth.core.service import AuthorizationService


class TestDecide:

    def test_decide_accepts_action_strings(self, service):
        assert service.decide("U2", Resource.record("D5"), "read")

    def test_denies_are_audited(self, service, audit_entries):
        service.decide("U2", Resource.record("D5"), Action.UPDATE)

        assert len(audit_entries) == 1
        entry = audit_entries[0]
        assert entry.actor_id == "U2"
        assert entry.resource_type == "record"
        assert entry.resource_id == "D5"
        assert entry.reason == "role_forbids"

    def test_escalation_audited_as_critical(self, service, audit_entries):
        service.decide(
            "gm1", Resource.principal("U4"), Action.ASSIGN_ROLE, target_role=Role.SUPER_ADMIN,
        )
        assert audit_entries[-1].severity is AuditSeverity.CRITICAL
        assert audit_entries[-1].details == {"target_role": "super_admin"}

    def test_timeout_fails_closed(self, service):
        service.timeout_seconds = 0
        decision = service.decide("admin", Resource.record("D1"), Action.READ)
        assert decision.reason is DecisionReason.TIMEOUT

    def test_reachable_ids_fail_closed_on_timeout(self, service):
        service.timeout_seconds = 0
        assert service.reachable_ids("admin", ResourceType.DEPARTMENT) == frozenset()

    def test_reachable_ids_rejects_unknown_type(self, service):
        with pytest.raises(ValueError):
            service.reachable_ids("admin", "vehicle")

    def test_resolved_scope(self, service):
        assert service.resolved_scope("U2").department_ids == {"D5"}


class TestPersonRecords:

    def test_read_person_masks_for_peer(self, service):
        record = service.read_person("U2", "U4")
        assert record["full_name"] == "Ulla Tech"
        assert record["email"] is None

    def test_read_person_denied_across_groups(self, service):
        assert service.read_person("U2", "U3") is None

    def test_read_person_unmasked_for_manager(self, service):
        assert service.read_person("U1", "U4")["email"] == "ulla@north.example"

    def test_visible_fields(self, service):
        assert "email" in service.visible_fields("U4", "U4")
        assert "email" not in service.visible_fields("U2", "U4")

    def test_redact(self, service):
        record = {"id": "U4", "full_name": "Ulla Tech", "email": "ulla@north.example"}
        assert service.redact("sched", record)["email"] is None


class TestGrants:

    def test_group_manager_grants_in_own_group(self, service):
        decision = service.grant("U1", "S1", granted_by="gm1")

        assert decision
        grant = service.grants.get(decision.reference)
        assert grant.scope_kind is ScopeKind.STORE
        assert service.resolved_scope("U1").department_ids == {"D1", "D2", "D3"}

    def test_grant_reference_is_stable(self, service):
        """Granting the same scope twice returns the same grant."""
        first = service.grant("U1", "D2", granted_by="gm1")
        second = service.grant("U1", "D2", granted_by="gm1")
        assert first.reference == second.reference

    def test_group_manager_cannot_grant_other_group(self, service):
        decision = service.grant("U1", "S3", granted_by="gm1")
        assert decision.reason is DecisionReason.SCOPE_MISMATCH

    def test_department_manager_cannot_grant(self, service):
        decision = service.grant("U4", "D1", granted_by="U1")
        assert not decision
        assert service.grants.active_grants_of("U4") == []

    def test_only_grant_managers_grant(self, service, audit_entries):
        """A controller sees the whole group but cannot widen anyone's scope."""
        decision = service.grant("U4", "S1", granted_by="ctrl")

        assert decision.reason is DecisionReason.ROLE_FORBIDS
        assert audit_entries[-1].actor_id == "ctrl"
        assert audit_entries[-1].resource_id == "S1"
        assert service.grants.active_grants_of("U4") == []

    def test_department_manager_cannot_revoke_in_own_department(self, service):
        grant_id = service.grant("U4", "D1", granted_by="gm1").reference

        decision = service.revoke(grant_id, revoked_by="U1")

        assert decision.reason is DecisionReason.ROLE_FORBIDS
        assert service.grants.get(grant_id).is_active

    def test_grant_fails_closed_on_timeout(self, service):
        service.timeout_seconds = 0
        decision = service.grant("U1", "S1", granted_by="gm1")
        assert decision.reason is DecisionReason.TIMEOUT
        assert service.grants.active_grants_of("U1") == []

    def test_super_admin_grants_anywhere(self, service):
        assert service.grant("U2", "D6", granted_by="admin")

    def test_grant_on_unknown_scope(self, service, audit_entries):
        decision = service.grant("U2", "nowhere", granted_by="admin")
        assert decision.reason is DecisionReason.UNKNOWN_RESOURCE
        assert audit_entries[-1].resource_id == "nowhere"

    def test_grant_on_group_is_refused(self, service):
        decision = service.grant("U2", "G1", granted_by="admin")
        assert decision.reason is DecisionReason.UNKNOWN_RESOURCE

    def test_revoke(self, service):
        grant_id = service.grant("U1", "S1", granted_by="gm1").reference

        decision = service.revoke(grant_id, revoked_by="gm1")

        assert decision
        assert decision.reference == grant_id
        assert service.resolved_scope("U1").department_ids == {"D1"}

    def test_revoke_twice_is_denied(self, service):
        grant_id = service.grant("U1", "S1", granted_by="gm1").reference
        service.revoke(grant_id, revoked_by="gm1")

        decision = service.revoke(grant_id, revoked_by="gm1")
        assert decision.reason is DecisionReason.ALREADY_REVOKED

    def test_revoke_unknown_grant(self, service):
        assert service.revoke("missing", revoked_by="gm1").reason is DecisionReason.NOT_FOUND

    def test_revoke_requires_scope_over_grant(self, service):
        grant_id = service.grant("U2", "D6", granted_by="admin").reference
        decision = service.revoke(grant_id, revoked_by="gm1")
        assert not decision
        assert service.grants.get(grant_id).is_active

    def test_system_revoke(self, service):
        grant_id = service.grant("U1", "S1", granted_by="gm1").reference
        assert service.revoke(grant_id)
        assert service.grants.get(grant_id).revoked_by == "system"

    def test_find_dangling_grants(self, service, sample_hierarchy):
        """Deleting a department leaves its grants dangling until cleaned up."""
        sample_hierarchy["departments"] = [
            d for d in sample_hierarchy["departments"] if d["id"] != "D5"
        ]
        assert service.graph.load(sample_hierarchy)

        dangling = list(service.find_dangling_grants())
        assert [(g.principal_id, g.scope_id) for g in dangling] == [("U2", "D5")]
        assert service.resolved_scope("U2").is_empty


class TestRoles:

    def test_group_manager_assigns_role(self, service):
        decision = service.assign_role("U4", "scheduler", assigned_by="gm1")
        assert decision
        assert Role.SCHEDULER in service.identity.roles_of("U4")

    def test_assign_unknown_role(self, service):
        decision = service.assign_role("U4", "owner", assigned_by="gm1")
        assert decision.reason is DecisionReason.INVALID_REQUEST

    def test_escalation_blocked(self, service):
        decision = service.assign_role("U4", Role.SUPER_ADMIN, assigned_by="gm1")
        assert decision.reason is DecisionReason.ESCALATION
        assert Role.SUPER_ADMIN not in service.identity.roles_of("U4")

    def test_super_admin_may_create_super_admin(self, service):
        assert service.assign_role("gm1", Role.SUPER_ADMIN, assigned_by="admin")
        assert service.resolved_scope("gm1").is_universal

    def test_revoke_role(self, service):
        decision = service.revoke_role("U4", "read_only", revoked_by="gm1")
        assert decision
        assert service.identity.roles_of("U4") == frozenset()

    def test_revoke_missing_role(self, service):
        decision = service.revoke_role("U4", Role.SCHEDULER, revoked_by="gm1")
        assert decision.reason is DecisionReason.NOT_FOUND

    def test_non_super_admin_cannot_revoke_super_admin(self, service):
        decision = service.revoke_role("admin", Role.SUPER_ADMIN, revoked_by="gm1")
        assert decision.reason is DecisionReason.ESCALATION
        assert Role.SUPER_ADMIN in service.identity.roles_of("admin")

    def test_system_revoke_role(self, service):
        assert service.revoke_role("U1", Role.DEPARTMENT_MANAGER)
        assert service.resolved_scope("U1").is_empty


class TestReachableIds:
    """List pre-filtering across grant changes."""

    def test_store_grant_widens_then_revoke_restores(self, service):
        assert service.reachable_ids("U1", ResourceType.DEPARTMENT) == {"D1"}

        grant_id = service.grant("U1", "S1", granted_by="gm1").reference
        assert service.reachable_ids("U1", ResourceType.DEPARTMENT) == {"D1", "D2", "D3"}

        service.revoke(grant_id, revoked_by="gm1")
        assert service.reachable_ids("U1", ResourceType.DEPARTMENT) == {"D1"}

    def test_repeated_calls_agree(self, service):
        first = service.reachable_ids("U2", ResourceType.RECORD)
        assert all(service.reachable_ids("U2", ResourceType.RECORD) == first for _ in range(5))

    @pytest.mark.parametrize("order", [(0, 1, 2, 3), (3, 2, 1, 0), (2, 0, 3, 1)])
    def test_unrelated_grant_changes_do_not_move_ids(self, hierarchy, order):
        """U2's ids are the same whatever happens to other principals' grants."""
        service = AuthorizationService.from_hierarchy(hierarchy, auditor=DecisionAuditor(sinks=[]))
        baseline = {
            rtype: service.reachable_ids("U2", rtype)
            for rtype in (ResourceType.DEPARTMENT, ResourceType.STORE, ResourceType.RECORD)
        }
        steps = [
            lambda: service.grant("U1", "S1", granted_by="gm1"),
            lambda: service.grant("U4", "D4", granted_by="gm1"),
            lambda: service.grant("U3", "D6", granted_by="admin"),
            lambda: service.revoke(service.grant("sched", "D5", granted_by="gm1").reference),
        ]

        for index in order:
            assert steps[index]()
            for rtype, ids in baseline.items():
                assert service.reachable_ids("U2", rtype) == ids
