"""
Laudato Points API
Main Application Entry Point

FastAPI application serving the wallet QR endpoints and the role-gated admin
panel API.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from laudato.api.exceptions import LaudatoException
from laudato.api.routes import admin, rewards
from laudato.core.audit import AuditLogger
from laudato.core.config import Settings, get_settings
from laudato.core.datastore import Datastore, InMemoryDatastore
from laudato.core.logging import get_logger, setup_logging
from laudato.core.permissions import DEFAULT_PERMISSION_TABLE, PermissionAuthority, PermissionTable
from laudato.core.redemption_token import RedemptionTokenAuthority

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    datastore: Optional[Datastore] = None,
    permission_table: PermissionTable = DEFAULT_PERMISSION_TABLE,
    token_authority: Optional[RedemptionTokenAuthority] = None,
) -> FastAPI:
    """
    Build the application with its collaborators

    Args:
        settings: Defaults to environment settings
        datastore: Defaults to an empty in-memory datastore
        permission_table: Module -> roles table, fixed for the app's lifetime
        token_authority: Defaults to one keyed with settings.QR_SECRET
    """
    settings = settings or get_settings()
    datastore = datastore if datastore is not None else InMemoryDatastore()
    token_authority = token_authority or RedemptionTokenAuthority(
        secret=settings.QR_SECRET,
        validity_ms=settings.QR_VALIDITY_MS,
        refresh_ms=settings.QR_REFRESH_MS,
    )

    setup_logging(settings.LOG_LEVEL, json_logs=settings.is_production)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info("Starting Laudato API", env=settings.ENV)
        yield
        logger.info("Laudato API shut down complete")

    app = FastAPI(
        title="Laudato Points API",
        version=settings.API_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.datastore = datastore
    app.state.permissions = PermissionAuthority(permission_table)
    app.state.tokens = token_authority
    app.state.audit = AuditLogger(datastore)

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add request ID to all requests for tracing"""
        request_id = str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(LaudatoException)
    async def laudato_exception_handler(request: Request, exc: LaudatoException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    # ========================================================================
    # ROUTES
    # ========================================================================

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.API_VERSION}

    app.include_router(rewards.router)
    app.include_router(admin.router)

    app.mount("/metrics", make_asgi_app())

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "laudato.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
