"""Access decision endpoints.

Lets an application ask whether the calling principal may act on a
resource, fetch the ids it may read (for query pre-filtering), and read
masked person records.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from storeauth.api.deps import ACCESS_DENIED, get_current_principal, get_service
from storeauth.api.schemas import (
    DecisionRequest,
    DecisionResponse,
    PersonRecord,
    ReachableIdsResponse,
    VisibleFieldsResponse,
)
from storeauth.core.policy.engine import Resource
from storeauth.core.rbac.permissions import ResourceType
from storeauth.core.service import AuthorizationService

router = APIRouter(tags=["decisions"])


@router.post("/decisions", response_model=DecisionResponse)
async def check_access(
    body: DecisionRequest,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Decide a single (resource, action) for the calling principal."""
    resource = Resource(
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        department_id=body.department_id,
        store_id=body.store_id,
        group_id=body.group_id,
    )
    decision = service.decide(principal_id, resource, body.action, target_role=body.target_role)
    return DecisionResponse(allowed=decision.allowed)


@router.get("/reachable/{resource_type}", response_model=ReachableIdsResponse)
async def reachable_ids(
    resource_type: ResourceType,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Ids of the given kind the calling principal can read."""
    ids = service.reachable_ids(principal_id, resource_type)
    return ReachableIdsResponse(resource_type=resource_type, ids=sorted(ids))


@router.get("/principals/{target_id}", response_model=PersonRecord)
async def read_principal(
    target_id: str,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Read a person record with privileged fields masked."""
    record = service.read_person(principal_id, target_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    return PersonRecord(record=record)


@router.get("/principals/{target_id}/visible-fields", response_model=VisibleFieldsResponse)
async def visible_fields(
    target_id: str,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    fields = service.visible_fields(principal_id, target_id)
    return VisibleFieldsResponse(target_id=target_id, fields=sorted(fields))
