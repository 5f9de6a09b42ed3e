from typing import Generator, Optional
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from storeauth.common.logger import get_logger
from storeauth.core.config import get_settings
from storeauth.core.policy.engine import Decision
from storeauth.core.service import AuthorizationService
from storeauth.db.session import SessionLocal
from storeauth.db.stores import SqlGrantStore, SqlIdentityStore

logger = get_logger("api")

ACCESS_DENIED = "Access denied"


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_service(request: Request, db: Session = Depends(get_db)) -> AuthorizationService:
    """Authorization service for this request.

    An app configured with a fixed service (in-memory or test) uses it
    directly; otherwise a SQL-backed service is built over this request's
    session, the shared scope graph and the shared manager chain. Both
    snapshots are reloaded once per freshness window.
    """
    service = getattr(request.app.state, "service", None)
    if service is not None:
        return service

    settings = get_settings()
    holder = request.app.state.graph_holder
    manager_chain = getattr(request.app.state, "manager_chain", None)
    for snapshot in (holder, manager_chain):
        if snapshot is not None and snapshot.is_stale(settings.graph_max_age_seconds):
            snapshot.refresh()

    return AuthorizationService(
        holder,
        SqlIdentityStore(db, manager_chain),
        SqlGrantStore(db),
        auditor=request.app.state.auditor,
        timeout_seconds=settings.decision_timeout_seconds,
    )


def get_current_principal(
    x_principal_id: Optional[str] = Header(None, alias="X-Principal-Id"),
) -> str:
    """Principal id set by the authenticating gateway."""
    if not x_principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing principal",
        )
    return x_principal_id


def require_allowed(decision: Decision) -> Decision:
    """Raise a uniform 403 for any Deny; the reason stays in the audit log."""
    if not decision:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    return decision
