"""Access grant API endpoints.

Grants give a principal an explicit store or department. Only grant
managers whose own scope covers the target may grant or revoke.
"""

from fastapi import APIRouter, Depends, Response, status

from storeauth.api.deps import get_current_principal, get_service, require_allowed
from storeauth.api.schemas import GrantCreate, GrantResponse
from storeauth.core.service import AuthorizationService

router = APIRouter(prefix="/grants", tags=["grants"])


@router.post("", response_model=GrantResponse, status_code=status.HTTP_201_CREATED)
async def create_grant(
    grant_data: GrantCreate,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Grant a store or department to a principal."""
    decision = require_allowed(
        service.grant(grant_data.principal_id, grant_data.scope_id, granted_by=principal_id)
    )
    grant = service.grants.get(decision.reference)
    return GrantResponse(
        id=grant.id,
        principal_id=grant.principal_id,
        scope_kind=grant.scope_kind.value,
        scope_id=grant.scope_id,
        granted_by=grant.granted_by,
    )


@router.delete("/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_grant(
    grant_id: str,
    principal_id: str = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_service),
):
    """Revoke a grant. The row is kept for the audit trail."""
    require_allowed(service.revoke(grant_id, revoked_by=principal_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
