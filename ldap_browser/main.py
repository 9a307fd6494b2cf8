from __future__ import annotations

import logging

from fastapi import FastAPI, Request

from .bootstrap import initialize_application
from .directory.errors import DirectoryError
from .directory.registry import RegistryStore, SessionRegistry
from .directory.session import DirectorySession
from .env_settings import get_env
from .routers.connections import router as connections_router
from .routers.directory import router as directory_router
from .routers.ldif import router as ldif_router
from .routers.schema import router as schema_router
from .routers.stats import router as stats_router
from .webui import directory_error_response

log = logging.getLogger(__name__)

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 10000


def _session_factory():
    env = get_env()
    page_size = max(MIN_PAGE_SIZE, min(MAX_PAGE_SIZE, int(env.ldap_page_size)))

    def factory() -> DirectorySession:
        return DirectorySession(
            page_size=page_size,
            connect_timeout=env.ldap_connect_timeout,
            tls_validate=env.ldap_tls_validate,
        )

    return factory


def create_app() -> FastAPI:
    app = FastAPI(title="LDAP Browser")

    session_factory = _session_factory()
    app.state.registries = RegistryStore(
        lambda: SessionRegistry(session_factory),
        max_idle_seconds=get_env().context_max_age_seconds,
    )

    @app.exception_handler(DirectoryError)
    def _directory_error(request: Request, exc: DirectoryError):
        log.info("%s %s: %s", request.method, request.url.path, exc)
        return directory_error_response(exc)

    app.include_router(connections_router)
    app.include_router(directory_router)
    app.include_router(schema_router)
    app.include_router(stats_router)
    app.include_router(ldif_router)

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        initialize_application()
        log.info("started (page size %s)", get_env().ldap_page_size)

    @app.on_event("shutdown")
    def _shutdown():
        app.state.registries.close()

    return app


app = create_app()
