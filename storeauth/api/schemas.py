"""Request and response schemas for the storeauth API."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from storeauth.core.rbac.permissions import Action, ResourceType
from storeauth.core.rbac.roles import Role


class DecisionRequest(BaseModel):
    """A (resource, action) pair to check for the calling principal."""
    resource_type: ResourceType
    resource_id: Optional[str] = None
    department_id: Optional[str] = None
    store_id: Optional[str] = None
    group_id: Optional[str] = None
    action: Action
    target_role: Optional[Role] = None


class DecisionResponse(BaseModel):
    # Reason codes stay in the audit log; callers only see the effect
    allowed: bool


class ReachableIdsResponse(BaseModel):
    resource_type: ResourceType
    ids: List[str]


class VisibleFieldsResponse(BaseModel):
    target_id: str
    fields: List[str]


class PersonRecord(BaseModel):
    """A person record with masked fields set to null."""
    record: Dict[str, Any]


class GrantCreate(BaseModel):
    principal_id: str = Field(..., min_length=1)
    scope_id: str = Field(..., min_length=1)


class GrantResponse(BaseModel):
    id: str
    principal_id: str
    scope_kind: str
    scope_id: str
    granted_by: Optional[str]


class RoleAssignmentCreate(BaseModel):
    role: str = Field(..., min_length=1)


class RoleAssignmentResponse(BaseModel):
    id: str
    principal_id: str
    role: Role
    assigned_by: Optional[str]

