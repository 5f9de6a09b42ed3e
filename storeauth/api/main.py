from typing import Optional

from fastapi import FastAPI

from storeauth import __version__
from storeauth.api.routers import decisions, grants, health, roles
from storeauth.common.config import load_hierarchy_file
from storeauth.common.logger import setup_audit_logger, setup_logger
from storeauth.core.audit import DecisionAuditor, logging_sink
from storeauth.core.config import get_settings
from storeauth.core.scope.graph import ScopeGraphHolder
from storeauth.core.scope.identity import ManagerChainHolder
from storeauth.core.service import AuthorizationService


def create_app(service: Optional[AuthorizationService] = None) -> FastAPI:
    """Build the API.

    With ``service`` (or ``STOREAUTH_HIERARCHY_FILE``) the app serves a
    fixed in-memory service; otherwise decisions read facts from the
    database and the scope graph is refreshed from it when stale.
    """
    settings = get_settings()
    setup_logger(
        level=settings.log_level,
        log_dir=settings.log_dir,
        file_logging=settings.log_to_file,
    )
    if settings.log_to_file:
        setup_audit_logger(settings.log_dir, level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Hierarchical authorization and scope resolution",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    if service is None and settings.hierarchy_file:
        service = AuthorizationService.from_hierarchy(
            load_hierarchy_file(settings.hierarchy_file),
            auditor=DecisionAuditor(audit_allows=settings.audit_allows),
            timeout_seconds=settings.decision_timeout_seconds,
        )

    if service is None:
        from storeauth.db.session import SessionLocal, init_db
        from storeauth.db.stores import SqlAuditSink, manager_chain_loader, snapshot_loader

        init_db()
        app.state.graph_holder = ScopeGraphHolder(loader=snapshot_loader(SessionLocal))
        app.state.manager_chain = ManagerChainHolder(loader=manager_chain_loader(SessionLocal))
        app.state.auditor = DecisionAuditor(
            sinks=[logging_sink, SqlAuditSink(SessionLocal)],
            audit_allows=settings.audit_allows,
        )
    app.state.service = service

    # Include routers
    app.include_router(health.router)
    app.include_router(decisions.router, prefix="/api")
    app.include_router(grants.router, prefix="/api")
    app.include_router(roles.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs" if settings.debug else None,
        }

    return app
