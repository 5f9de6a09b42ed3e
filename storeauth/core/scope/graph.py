"""Organizational scope graph: Group -> Store -> Department.

The graph is an immutable, read-mostly snapshot. It answers pure tree
lookups only and never consults grants, roles, or decisions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional

from storeauth.common.logger import get_logger
from storeauth.core.errors import HierarchyCycleError, HierarchyError
from storeauth.core.snapshots import SnapshotHolder

logger = get_logger("scope_graph")


class ScopeKind(str, Enum):
    """Kinds of node in the organization tree."""

    GROUP = "group"
    STORE = "store"
    DEPARTMENT = "department"


# Expected parent kind for each node kind
PARENT_KIND: Dict[ScopeKind, Optional[ScopeKind]] = {
    ScopeKind.GROUP: None,
    ScopeKind.STORE: ScopeKind.GROUP,
    ScopeKind.DEPARTMENT: ScopeKind.STORE,
}


@dataclass(frozen=True)
class ScopeNode:
    """A single node of the organization tree."""

    id: str
    kind: ScopeKind
    parent_id: Optional[str] = None
    name: str = ""
    manager_id: Optional[str] = None  # Departments only
    department_type: Optional[str] = None  # Departments only


def _index(nodes: Iterable[ScopeNode]) -> Dict[str, ScopeNode]:
    by_id: Dict[str, ScopeNode] = {}
    for node in nodes:
        if node.id in by_id:
            raise HierarchyError(f"Duplicate scope id {node.id}", node.id)
        by_id[node.id] = node
    return by_id


def _check_acyclic(by_id: Mapping[str, ScopeNode]) -> None:
    """Walk every node to the root; a revisited id is a cycle."""
    cleared: set = set()
    for start in by_id:
        path: List[str] = []
        on_path: set = set()
        current: Optional[str] = start
        while current is not None and current in by_id and current not in cleared:
            if current in on_path:
                raise HierarchyCycleError(current, path + [current])
            on_path.add(current)
            path.append(current)
            current = by_id[current].parent_id
        cleared.update(on_path)


class ScopeGraph:
    """Immutable lookup structure over one hierarchy snapshot."""

    def __init__(self, nodes: Iterable[ScopeNode] = ()):
        self._nodes = _index(nodes)
        children: Dict[str, set] = {}
        managed: Dict[str, set] = {}
        for node in self._nodes.values():
            if node.parent_id is not None:
                children.setdefault(node.parent_id, set()).add(node.id)
            if node.kind is ScopeKind.DEPARTMENT and node.manager_id:
                managed.setdefault(node.manager_id, set()).add(node.id)
        self._children = {k: frozenset(v) for k, v in children.items()}
        self._managed = {k: frozenset(v) for k, v in managed.items()}

    @classmethod
    def empty(cls) -> "ScopeGraph":
        return cls()

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> "ScopeGraph":
        """Build and validate a graph from a ``loadScopeGraph`` snapshot.

        The snapshot holds ``groups``, ``stores`` (with ``group_id``) and
        ``departments`` (with ``store_id`` and optional ``manager_id``).

        Raises:
            HierarchyError: duplicate ids or a parent of the wrong kind
            HierarchyCycleError: a node is its own transitive ancestor
        """
        try:
            raw = _raw_nodes(snapshot)
        except (KeyError, TypeError, AttributeError) as e:
            raise HierarchyError(f"Malformed scope graph snapshot: {e!r}") from e

        by_id = _index(raw)
        _check_acyclic(by_id)

        nodes = []
        for node in by_id.values():
            expected = PARENT_KIND[node.kind]
            if node.parent_id is None:
                if expected is not None:
                    logger.warning(f"{node.kind.value} {node.id} has no parent; kept detached")
                nodes.append(node)
                continue

            parent = by_id.get(node.parent_id)
            if parent is None:
                logger.warning(
                    f"{node.kind.value} {node.id} references missing "
                    f"{expected.value if expected else 'parent'} {node.parent_id}; kept detached"
                )
                nodes.append(_detach(node))
            elif expected is None or parent.kind is not expected:
                raise HierarchyError(
                    f"{node.kind.value} {node.id} has parent {parent.id} "
                    f"of kind {parent.kind.value}",
                    node.id,
                )
            else:
                nodes.append(node)

        return cls(nodes)

    # -- lookups ---------------------------------------------------------

    def node(self, node_id: Optional[str]) -> Optional[ScopeNode]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def contains(self, node_id: Optional[str]) -> bool:
        return node_id is not None and node_id in self._nodes

    def kind_of(self, node_id: Optional[str]) -> Optional[ScopeKind]:
        node = self.node(node_id)
        return node.kind if node else None

    def all_ids(self, kind: ScopeKind) -> FrozenSet[str]:
        return frozenset(n.id for n in self._nodes.values() if n.kind is kind)

    def group_of(self, store_id: Optional[str]) -> Optional[str]:
        node = self.node(store_id)
        if node is None or node.kind is not ScopeKind.STORE:
            return None
        return node.parent_id

    def store_of(self, department_id: Optional[str]) -> Optional[str]:
        node = self.node(department_id)
        if node is None or node.kind is not ScopeKind.DEPARTMENT:
            return None
        return node.parent_id

    def departments_of(self, store_id: Optional[str]) -> FrozenSet[str]:
        if self.kind_of(store_id) is not ScopeKind.STORE:
            return frozenset()
        return self._children.get(store_id, frozenset())

    def stores_of(self, group_id: Optional[str]) -> FrozenSet[str]:
        if self.kind_of(group_id) is not ScopeKind.GROUP:
            return frozenset()
        return self._children.get(group_id, frozenset())

    def manager_of(self, department_id: Optional[str]) -> Optional[str]:
        node = self.node(department_id)
        if node is None or node.kind is not ScopeKind.DEPARTMENT:
            return None
        return node.manager_id

    def departments_managed_by(self, principal_id: str) -> FrozenSet[str]:
        return self._managed.get(principal_id, frozenset())

    def group_containing(self, node_id: Optional[str]) -> Optional[str]:
        """Owning group of any node (a group owns itself)."""
        kind = self.kind_of(node_id)
        if kind is ScopeKind.GROUP:
            return node_id
        if kind is ScopeKind.STORE:
            return self.group_of(node_id)
        if kind is ScopeKind.DEPARTMENT:
            return self.group_of(self.store_of(node_id))
        return None

    def effective_home_group(
        self, home_group_id: Optional[str], home_store_id: Optional[str]
    ) -> Optional[str]:
        """Home group, falling back to the group of the home store.

        Computed on every call from the current snapshot; the fallback is
        never written back to the principal record.
        """
        if home_group_id:
            return home_group_id
        return self.group_of(home_store_id)

    def __len__(self) -> int:
        return len(self._nodes)


def _raw_nodes(snapshot: Mapping[str, Any]) -> List[ScopeNode]:
    raw: List[ScopeNode] = []
    for group in snapshot.get("groups") or []:
        raw.append(ScopeNode(
            id=str(group["id"]),
            kind=ScopeKind.GROUP,
            name=group.get("name") or "",
        ))
    for store in snapshot.get("stores") or []:
        raw.append(ScopeNode(
            id=str(store["id"]),
            kind=ScopeKind.STORE,
            parent_id=_opt_str(store.get("group_id")),
            name=store.get("name") or "",
        ))
    for dept in snapshot.get("departments") or []:
        raw.append(ScopeNode(
            id=str(dept["id"]),
            kind=ScopeKind.DEPARTMENT,
            parent_id=_opt_str(dept.get("store_id")),
            name=dept.get("name") or "",
            manager_id=_opt_str(dept.get("manager_id")),
            department_type=dept.get("department_type"),
        ))

    return raw


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def _detach(node: ScopeNode) -> ScopeNode:
    return ScopeNode(
        id=node.id,
        kind=node.kind,
        parent_id=None,
        name=node.name,
        manager_id=node.manager_id,
        department_type=node.department_type,
    )


class ScopeGraphHolder(SnapshotHolder[ScopeGraph]):
    """Holds the last-known-good graph and swaps in validated snapshots.

    A snapshot that fails validation is rejected: the previous graph keeps
    serving and the rejection is logged at CRITICAL for operators.
    """

    label = "scope graph snapshot"

    def __init__(
        self,
        graph: Optional[ScopeGraph] = None,
        loader: Optional[Callable[[], Mapping[str, Any]]] = None,
    ):
        super().__init__(graph or ScopeGraph.empty(), loader, loaded=graph is not None)

    def build(self, snapshot: Mapping[str, Any]) -> ScopeGraph:
        return ScopeGraph.from_snapshot(snapshot)

    def describe(self, graph: ScopeGraph) -> str:
        return f"scope graph with {len(graph)} nodes"
