"""Hierarchy snapshot files for storeauth.

Handles loading YAML files that describe an organization: store groups,
stores, departments, principals with their roles, and explicit access
grants. Used to seed an in-memory engine and to build test fixtures.

Example::

    groups:
      - id: G1
        name: North Auto Group
    stores:
      - id: S1
        group_id: G1
    departments:
      - id: D1
        store_id: S1
        manager_id: U1
        department_type: service
    principals:
      - id: U1
        home_store_id: S1
        roles: [department_manager]
    grants:
      - principal_id: U2
        scope_kind: department
        scope_id: D1
        granted_by: admin
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class GroupConfig:
    """A store group (tenant boundary)."""

    id: str
    name: str = ""


@dataclass
class StoreConfig:
    """A store and its owning group."""

    id: str
    name: str = ""
    group_id: Optional[str] = None


@dataclass
class DepartmentConfig:
    """A department, its store, and its designated manager."""

    id: str
    store_id: Optional[str] = None
    name: str = ""
    manager_id: Optional[str] = None
    department_type: Optional[str] = None


@dataclass
class PrincipalConfig:
    """A principal with its home placement and role names."""

    id: str
    full_name: str = ""
    email: Optional[str] = None
    home_store_id: Optional[str] = None
    home_group_id: Optional[str] = None
    reports_to: Optional[str] = None
    roles: List[str] = field(default_factory=list)


@dataclass
class GrantConfig:
    """An explicit store or department grant."""

    principal_id: str
    scope_kind: str
    scope_id: str
    granted_by: str = "system"


@dataclass
class HierarchyConfig:
    """Top-level contents of a hierarchy snapshot file."""

    groups: List[GroupConfig] = field(default_factory=list)
    stores: List[StoreConfig] = field(default_factory=list)
    departments: List[DepartmentConfig] = field(default_factory=list)
    principals: List[PrincipalConfig] = field(default_factory=list)
    grants: List[GrantConfig] = field(default_factory=list)

    def graph_snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return the organization tree in the shape ScopeGraph loads."""
        return {
            "groups": [{"id": g.id, "name": g.name} for g in self.groups],
            "stores": [
                {"id": s.id, "name": s.name, "group_id": s.group_id}
                for s in self.stores
            ],
            "departments": [
                {
                    "id": d.id,
                    "name": d.name,
                    "store_id": d.store_id,
                    "manager_id": d.manager_id,
                    "department_type": d.department_type,
                }
                for d in self.departments
            ],
        }


def parse_principal_config(principal_dict: Dict[str, Any]) -> PrincipalConfig:
    """Parse a principal entry.

    Args:
        principal_dict: Principal configuration dictionary

    Returns:
        PrincipalConfig instance
    """
    roles = principal_dict.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]

    return PrincipalConfig(
        id=str(principal_dict["id"]),
        full_name=principal_dict.get("full_name", ""),
        email=principal_dict.get("email"),
        home_store_id=principal_dict.get("home_store_id"),
        home_group_id=principal_dict.get("home_group_id"),
        reports_to=principal_dict.get("reports_to"),
        roles=[str(r) for r in roles],
    )


def parse_hierarchy_config(config_dict: Dict[str, Any]) -> HierarchyConfig:
    """Parse the full snapshot dictionary.

    Args:
        config_dict: Snapshot dictionary (typically from YAML)

    Returns:
        HierarchyConfig instance

    Raises:
        KeyError: If an entry is missing its ``id``
    """
    return HierarchyConfig(
        groups=[
            GroupConfig(id=str(g["id"]), name=g.get("name", ""))
            for g in config_dict.get("groups", [])
        ],
        stores=[
            StoreConfig(
                id=str(s["id"]),
                name=s.get("name", ""),
                group_id=s.get("group_id"),
            )
            for s in config_dict.get("stores", [])
        ],
        departments=[
            DepartmentConfig(
                id=str(d["id"]),
                store_id=d.get("store_id"),
                name=d.get("name", ""),
                manager_id=d.get("manager_id"),
                department_type=d.get("department_type"),
            )
            for d in config_dict.get("departments", [])
        ],
        principals=[
            parse_principal_config(p) for p in config_dict.get("principals", [])
        ],
        grants=[
            GrantConfig(
                principal_id=str(g["principal_id"]),
                scope_kind=g["scope_kind"],
                scope_id=str(g["scope_id"]),
                granted_by=g.get("granted_by", "system"),
            )
            for g in config_dict.get("grants", [])
        ],
    )


def load_config(config_path: str) -> Dict[str, Any]:
    """Load a snapshot dictionary from a YAML file.

    Args:
        config_path: Path to the snapshot file

    Returns:
        Snapshot dictionary

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is invalid YAML
        TypeError: If the YAML root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Hierarchy file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Hierarchy root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in string values."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_hierarchy_file(config_path: str) -> HierarchyConfig:
    """Load and parse a hierarchy snapshot file into dataclasses."""
    return parse_hierarchy_config(load_config(config_path))
