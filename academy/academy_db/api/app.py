"""
FastAPI application factory for the academy store.

The app owns the store handle for its lifetime unless one is injected
(tests inject the in-memory store). On startup the bootstrap academy is
seeded so that every non-admin user has an academy to fall back to.

Identity is taken from the X-User-ID header, which an upstream auth layer
is trusted to have verified.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from ..actions import AcademyActions
from ..config import AppConfig
from ..errors import AcademyForbiddenError, StoreError
from ..repositories import AcademyRepository, UserRepository
from ..storage import close_store, open_store
from ..storage.base import KeyValueStore
from ..tenancy import AcademyContextResolver
from .routes import router

logger = logging.getLogger(__name__)

FORBIDDEN_PATH = "/forbidden"


def create_app(config: AppConfig | None = None, store: KeyValueStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration, loaded from the environment if omitted
        store: Store handle to use instead of opening the configured one
    """
    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owns_store = store is None
        handle = open_store(config.storage) if owns_store else store
        default_id = config.bootstrap.default_academy_id

        AcademyRepository(handle, default_id).ensure_default_exists("system")

        app.state.config = config
        app.state.store = handle
        app.state.users = UserRepository(handle, default_id)
        app.state.actions = AcademyActions(handle, default_id)
        app.state.resolver = AcademyContextResolver(handle, config.cookie.secret, default_id)
        logger.info("Academy API started", extra={"environment": config.environment})

        yield

        if owns_store:
            close_store()
        logger.info("Academy API stopped")

    app = FastAPI(
        title="Academy Store",
        description="Multi-academy programs, levels, attendance and progression.",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(AcademyForbiddenError)
    async def forbidden_redirect(request: Request, exc: AcademyForbiddenError) -> RedirectResponse:
        logger.warning(exc.message, extra=exc.details)
        return RedirectResponse(FORBIDDEN_PATH, status_code=303)

    @app.exception_handler(StoreError)
    async def store_failure(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(f"Store failure: {exc.message}", extra={"code": exc.code})
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Service unavailable", "code": "internal"},
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "healthy", "service": "academy-store"}

    @app.get(FORBIDDEN_PATH)
    def forbidden():
        return JSONResponse(
            status_code=403,
            content={"success": False, "error": "No access to the selected academy", "code": "forbidden"},
        )

    return app
