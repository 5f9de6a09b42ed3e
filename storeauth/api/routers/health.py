"""Health check endpoints.

- /health: Basic health check
- /health/ready: Readiness; reports the snapshots in service and whether
  the last load of either was rejected
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from storeauth import __version__
from storeauth.api.deps import get_service
from storeauth.core.service import AuthorizationService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


@router.get("/health/ready")
async def readiness(
    request: Request, service: AuthorizationService = Depends(get_service)
) -> Dict[str, Any]:
    graph = service.graph
    checks: Dict[str, Any] = {
        "scope_graph": {"nodes": len(graph.current), **graph.status()},
    }
    degraded = graph.last_error is not None

    manager_chain = getattr(request.app.state, "manager_chain", None)
    if manager_chain is not None:
        checks["manager_chain"] = {"principals": len(manager_chain.current), **manager_chain.status()}
        degraded = degraded or manager_chain.last_error is not None

    return {"status": "degraded" if degraded else "ready", **checks}
