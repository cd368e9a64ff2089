"""FastAPI application factory.

Creates the app with tenant middleware, logging middleware, metrics middleware,
CORS, Sentry, lifespan events wiring the tenancy services, error handlers
for the tenancy error taxonomy, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from src.coleapp.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.coleapp.api.middleware.tenant import TenantMiddleware
from src.coleapp.api.v1.router import router as v1_router
from src.coleapp.config import Settings, get_settings
from src.coleapp.core.database import init_db
from src.coleapp.core.errors import (
    ConfigurationError,
    CrossSchemaOperationError,
    HandleConstructionError,
    ProvisioningError,
    SubdomainTakenError,
    UnknownTenantError,
)
from src.coleapp.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.coleapp.core.redis import close_redis, create_redis
from src.coleapp.core.registry import ConnectionRegistry
from src.coleapp.services.coordinator import TenantCoordinator
from src.coleapp.services.directory import TenantDirectory
from src.coleapp.services.provisioner import SchemaProvisioner
from src.coleapp.services.resolver import TenantGateway, TenantResolver

logger = structlog.get_logger(__name__)


def build_services(app: FastAPI, registry: ConnectionRegistry, control_plane, settings: Settings, redis=None) -> None:
    """Wire the tenancy services onto app.state."""
    directory = TenantDirectory(control_plane)
    provisioner = SchemaProvisioner(
        registry,
        template_schema=settings.TEMPLATE_SCHEMA,
        deprovision_attempts=settings.DEPROVISION_MAX_ATTEMPTS,
    )
    resolver = TenantResolver(directory, redis=redis, ttl=settings.TENANT_CACHE_TTL_SECONDS)

    app.state.registry = registry
    app.state.redis = redis
    app.state.directory = directory
    app.state.provisioner = provisioner
    app.state.resolver = resolver
    app.state.gateway = TenantGateway(resolver, registry)
    app.state.coordinator = TenantCoordinator(
        registry,
        directory,
        provisioner,
        resolver=resolver,
        concurrency=settings.CROSS_SCHEMA_CONCURRENCY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire services on startup, close handles on shutdown."""
    settings = get_settings()
    configure_structlog()

    if not settings.DATABASE_URL:
        raise ConfigurationError("DATABASE_URL is not configured")

    registry = ConnectionRegistry(
        settings.DATABASE_URL,
        shared_schema=settings.SHARED_SCHEMA,
        pool_size=settings.TENANT_POOL_SIZE,
        max_overflow=settings.TENANT_MAX_OVERFLOW,
        control_plane_pool_size=settings.CONTROL_PLANE_POOL_SIZE,
    )
    control_plane = await registry.control_plane()
    await init_db(control_plane, settings.SHARED_SCHEMA, settings.TEMPLATE_SCHEMA)

    redis = create_redis(settings.REDIS_URL)
    build_services(app, registry, control_plane, settings, redis=redis)

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    logger.info("app.started", environment=settings.ENVIRONMENT.value)
    try:
        yield
    finally:
        await registry.close_all()
        await close_redis(redis)
        logger.info("app.stopped")


# ── Error Handlers ──────────────────────────────────────────────────────────


def register_exception_handlers(app: FastAPI) -> None:
    """Map the tenancy error taxonomy to HTTP responses."""

    @app.exception_handler(SubdomainTakenError)
    async def subdomain_taken(request: Request, exc: SubdomainTakenError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(UnknownTenantError)
    async def unknown_tenant(request: Request, exc: UnknownTenantError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Tenant not found"})

    @app.exception_handler(ProvisioningError)
    async def provisioning_failed(request: Request, exc: ProvisioningError) -> JSONResponse:
        logger.error(
            "api.provisioning_failed",
            schema_name=exc.schema_name,
            table=exc.table,
            operation=exc.operation,
            error=str(exc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": (
                    f"Tenant {exc.operation} failed"
                    + (f" at table '{exc.table}'" if exc.table else "")
                    + ". Changes were rolled back where possible; check the tenant's "
                    "provisioning_status and retry the request."
                ),
                "operation": exc.operation,
            },
        )

    @app.exception_handler(CrossSchemaOperationError)
    async def cross_schema_failed(request: Request, exc: CrossSchemaOperationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Cross-tenant operation stopped early", "completed": len(exc.completed)},
        )

    @app.exception_handler(HandleConstructionError)
    @app.exception_handler(ConfigurationError)
    async def unavailable(request: Request, exc: Exception) -> JSONResponse:
        logger.error("api.database_unavailable", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database temporarily unavailable"},
        )

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError) -> JSONResponse:
        # Messages may name schemas; they go to the log only
        logger.warning("api.invalid_value", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=422, content={"detail": "Invalid request"})


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass use_lifespan=False and populate app.state themselves.
    """
    settings = get_settings()

    app = FastAPI(
        title="Cole App API",
        version="0.1.0",
        description="Multi-tenant school management platform",
        lifespan=lifespan if use_lifespan else None,
    )

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- resolves tenant context from X-Tenant-ID)
    app.add_middleware(TenantMiddleware)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
