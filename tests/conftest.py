"""Pytest configuration and shared fixtures.

The sample organization used throughout:

    G1 North Auto Group
      S1 North Ford        D1 service (U1), D2 sales, D3 parts
      S2 North Honda       D4 service, D5 sales
    G2 South Motors
      S3 South Toyota      D6 service (dm2)
"""

from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storeauth.common.config import HierarchyConfig, parse_hierarchy_config
from storeauth.core.audit import AuditEntry, DecisionAuditor
from storeauth.core.service import AuthorizationService
from storeauth.db import models  # noqa: F401  (register models)
from storeauth.db.base import Base


@pytest.fixture
def sample_hierarchy() -> dict:
    """Sample hierarchy snapshot dictionary."""
    return {
        "groups": [
            {"id": "G1", "name": "North Auto Group"},
            {"id": "G2", "name": "South Motors"},
        ],
        "stores": [
            {"id": "S1", "name": "North Ford", "group_id": "G1"},
            {"id": "S2", "name": "North Honda", "group_id": "G1"},
            {"id": "S3", "name": "South Toyota", "group_id": "G2"},
        ],
        "departments": [
            {"id": "D1", "store_id": "S1", "name": "Service", "manager_id": "U1", "department_type": "service"},
            {"id": "D2", "store_id": "S1", "name": "Sales", "department_type": "sales"},
            {"id": "D3", "store_id": "S1", "name": "Parts", "department_type": "parts"},
            {"id": "D4", "store_id": "S2", "name": "Service", "department_type": "service"},
            {"id": "D5", "store_id": "S2", "name": "Sales", "department_type": "sales"},
            {"id": "D6", "store_id": "S3", "name": "Service", "manager_id": "dm2", "department_type": "service"},
        ],
        "principals": [
            {"id": "admin", "full_name": "Ada Admin", "home_group_id": "G1", "roles": ["super_admin"]},
            {"id": "gm1", "full_name": "Gail North", "email": "gail@north.example", "home_group_id": "G1", "roles": ["group_manager"]},
            {"id": "ctrl", "full_name": "Cal Controller", "home_store_id": "S1", "roles": ["controller"]},
            {"id": "U1", "full_name": "Una Service", "email": "una@north.example", "home_store_id": "S1", "reports_to": "gm1", "roles": ["department_manager"]},
            {"id": "U2", "full_name": "Uri Sales", "email": "uri@north.example", "home_store_id": "S2", "reports_to": "gm1", "roles": ["read_only"]},
            {"id": "U4", "full_name": "Ulla Tech", "email": "ulla@north.example", "home_store_id": "S1", "reports_to": "U1", "roles": ["read_only"]},
            {"id": "sched", "full_name": "Sam Scheduler", "home_store_id": "S2", "roles": ["scheduler"]},
            {"id": "gm2", "full_name": "Gus South", "home_group_id": "G2", "roles": ["group_manager"]},
            {"id": "dm2", "full_name": "Dee South", "home_store_id": "S3", "reports_to": "gm2", "roles": ["department_manager"]},
            {"id": "U3", "full_name": "Ugo South", "email": "ugo@south.example", "home_store_id": "S3", "reports_to": "gm2", "roles": ["read_only"]},
        ],
        "grants": [
            {"principal_id": "U2", "scope_kind": "department", "scope_id": "D5", "granted_by": "gm1"},
        ],
    }


@pytest.fixture
def hierarchy(sample_hierarchy) -> HierarchyConfig:
    return parse_hierarchy_config(sample_hierarchy)


@pytest.fixture
def audit_entries() -> List[AuditEntry]:
    """Entries captured by the service's auditor."""
    return []


@pytest.fixture
def service(hierarchy, audit_entries) -> AuthorizationService:
    """In-memory service over the sample organization."""
    auditor = DecisionAuditor(sinks=[audit_entries.append])
    return AuthorizationService.from_hierarchy(hierarchy, auditor=auditor)


@pytest.fixture
def db_engine():
    """Fresh in-memory sqlite database shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
