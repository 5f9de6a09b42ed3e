"""Tests for the organization scope graph."""

import logging

import pytest

from storeauth.core.errors import HierarchyCycleError, HierarchyError
from storeauth.core.scope.graph import ScopeGraph, ScopeGraphHolder, ScopeKind


@pytest.fixture
def graph(sample_hierarchy) -> ScopeGraph:
    return ScopeGraph.from_snapshot(sample_hierarchy)


class TestScopeGraphLookups:
    """Test pure tree lookups."""

    def test_kinds(self, graph):
        assert graph.kind_of("G1") is ScopeKind.GROUP
        assert graph.kind_of("S1") is ScopeKind.STORE
        assert graph.kind_of("D1") is ScopeKind.DEPARTMENT
        assert graph.kind_of("nope") is None

    def test_parents(self, graph):
        assert graph.store_of("D4") == "S2"
        assert graph.group_of("S2") == "G1"
        assert graph.group_containing("D6") == "G2"
        assert graph.group_containing("G1") == "G1"

    def test_parent_lookups_reject_wrong_kind(self, graph):
        """store_of a store or group_of a department is not a tree fact."""
        assert graph.store_of("S1") is None
        assert graph.group_of("D1") is None

    def test_children(self, graph):
        assert graph.departments_of("S1") == {"D1", "D2", "D3"}
        assert graph.stores_of("G1") == {"S1", "S2"}
        assert graph.departments_of("G1") == frozenset()

    def test_all_ids(self, graph):
        assert graph.all_ids(ScopeKind.GROUP) == {"G1", "G2"}
        assert len(graph.all_ids(ScopeKind.DEPARTMENT)) == 6
        assert len(graph) == 11

    def test_managers(self, graph):
        assert graph.manager_of("D1") == "U1"
        assert graph.manager_of("D2") is None
        assert graph.departments_managed_by("U1") == {"D1"}
        assert graph.departments_managed_by("nobody") == frozenset()

    def test_effective_home_group(self, graph):
        """Explicit home group wins; otherwise the home store's group."""
        assert graph.effective_home_group("G2", "S1") == "G2"
        assert graph.effective_home_group(None, "S1") == "G1"
        assert graph.effective_home_group(None, None) is None
        assert graph.effective_home_group(None, "gone") is None

    def test_empty_graph(self):
        graph = ScopeGraph.empty()
        assert len(graph) == 0
        assert graph.kind_of("G1") is None


class TestScopeGraphValidation:
    """Test snapshot validation."""

    def test_duplicate_id_rejected(self):
        snapshot = {
            "groups": [{"id": "X"}],
            "stores": [{"id": "X", "group_id": None}],
        }
        with pytest.raises(HierarchyError, match="Duplicate"):
            ScopeGraph.from_snapshot(snapshot)

    def test_wrong_parent_kind_rejected(self):
        """A department must sit under a store, not a group."""
        snapshot = {
            "groups": [{"id": "G1"}],
            "departments": [{"id": "D1", "store_id": "G1"}],
        }
        with pytest.raises(HierarchyError) as exc_info:
            ScopeGraph.from_snapshot(snapshot)
        assert exc_info.value.node_id == "D1"

    def test_cycle_rejected(self):
        snapshot = {
            "stores": [
                {"id": "S1", "group_id": "D1"},
            ],
            "departments": [
                {"id": "D1", "store_id": "S1"},
            ],
        }
        with pytest.raises(HierarchyCycleError) as exc_info:
            ScopeGraph.from_snapshot(snapshot)
        assert exc_info.value.path[0] == exc_info.value.path[-1]

    def test_missing_parent_kept_detached(self, caplog):
        """A dangling parent reference is logged and the node kept."""
        snapshot = {
            "stores": [{"id": "S9", "group_id": "G-deleted"}],
            "departments": [{"id": "D9", "store_id": "S9"}],
        }
        with caplog.at_level(logging.WARNING, logger="storeauth"):
            graph = ScopeGraph.from_snapshot(snapshot)

        assert graph.group_of("S9") is None
        assert graph.store_of("D9") == "S9"
        assert "G-deleted" in caplog.text

    @pytest.mark.parametrize("snapshot", [
        {"stores": [{"name": "no id"}]},
        {"departments": [None]},
        {"groups": ["G1"]},
    ])
    def test_malformed_entry_rejected(self, snapshot):
        with pytest.raises(HierarchyError):
            ScopeGraph.from_snapshot(snapshot)


class TestScopeGraphHolder:
    """Test last-known-good snapshot handling."""

    def test_load_replaces_graph(self, sample_hierarchy):
        holder = ScopeGraphHolder()
        assert holder.is_stale(5)

        assert holder.load(sample_hierarchy)
        assert holder.current.kind_of("S1") is ScopeKind.STORE
        assert holder.loaded_at is not None
        assert not holder.is_stale(60)

    def test_rejected_snapshot_keeps_previous(self, sample_hierarchy, caplog):
        """A corrupt snapshot never replaces a good one."""
        holder = ScopeGraphHolder(ScopeGraph.from_snapshot(sample_hierarchy))
        before = holder.current

        bad = {
            "stores": [{"id": "S1", "group_id": "D1"}],
            "departments": [{"id": "D1", "store_id": "S1"}],
        }
        with caplog.at_level(logging.CRITICAL, logger="storeauth"):
            assert holder.load(bad) is False

        assert holder.current is before
        assert holder.rejected_count == 1
        assert isinstance(holder.last_error, HierarchyCycleError)
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    def test_successful_load_clears_error(self, sample_hierarchy):
        holder = ScopeGraphHolder()
        holder.load({"groups": [{"id": "X"}, {"id": "X"}]})
        assert holder.last_error is not None

        holder.load(sample_hierarchy)
        assert holder.last_error is None

    def test_refresh_uses_loader(self, sample_hierarchy):
        holder = ScopeGraphHolder(loader=lambda: sample_hierarchy)
        assert holder.refresh()
        assert len(holder.current) == 11

    def test_refresh_without_loader(self):
        with pytest.raises(RuntimeError):
            ScopeGraphHolder().refresh()

    def test_malformed_snapshot_is_rejected_not_raised(self, sample_hierarchy):
        holder = ScopeGraphHolder(ScopeGraph.from_snapshot(sample_hierarchy))

        assert holder.load({"stores": [{"name": "no id"}]}) is False

        assert isinstance(holder.last_error, HierarchyError)
        assert len(holder.current) == 11

    def test_rejection_waits_for_next_window(self):
        """A broken source is retried once per freshness window."""
        calls = []

        def loader():
            calls.append(1)
            return {"groups": [{"id": "X"}, {"id": "X"}]}

        holder = ScopeGraphHolder(loader=loader)
        assert not holder.refresh()

        assert holder.loaded_at is None
        assert not holder.is_stale(60)
        assert holder.is_stale(-1)
        assert len(calls) == 1
