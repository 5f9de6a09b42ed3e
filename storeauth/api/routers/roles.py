"""Role assignment API endpoints."""

from fastapi import APIRouter, Depends, Response, status

from storeauth.api.deps import get_current_principal, get_service, require_allowed
from storeauth.api.schemas import RoleAssignmentCreate, RoleAssignmentResponse
from storeauth.core.service import AuthorizationService

router = APIRouter(prefix="/principals/{target_id}/roles", tags=["roles"])


@router.post("", response_model=RoleAssignmentResponse, status_code=status.HTTP_201_CREATED)
async def assign_role(
    target_id: str,
    assignment_data: RoleAssignmentCreate,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Assign a role. Only a super admin may assign super admin."""
    decision = require_allowed(
        service.assign_role(target_id, assignment_data.role, assigned_by=principal_id)
    )
    assignment = next(
        a for a in service.identity.assignments_of(target_id) if a.id == decision.reference
    )
    return RoleAssignmentResponse(
        id=assignment.id,
        principal_id=assignment.principal_id,
        role=assignment.role,
        assigned_by=assignment.assigned_by,
    )


@router.delete("/{role}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role(
    target_id: str,
    role: str,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    require_allowed(service.revoke_role(target_id, role, revoked_by=principal_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
