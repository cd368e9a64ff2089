"""Tenant resolution middleware.

Resolves the tenant named in the X-Tenant-ID header (tenant id or
subdomain) through the TenantResolver held on app.state and sets the
TenantContext in contextvars for the request scope. Requests naming no
tenant, or an unknown or inactive one, are rejected; there is no fallback
to a default schema.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.coleapp.core.errors import UnknownTenantError
from src.coleapp.core.tenant import reset_tenant_context, set_tenant_context, skips_tenant_resolution

logger = structlog.get_logger(__name__)

TENANT_HEADER = "X-Tenant-ID"


def _tenant_not_found() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": "Tenant not found or inactive"},
    )


class TenantMiddleware(BaseHTTPMiddleware):
    """Sets the request's TenantContext from the X-Tenant-ID header.

    Paths under SKIP_TENANT_PATHS are excluded from tenant resolution.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if skips_tenant_resolution(path):
            return await call_next(request)

        identifier = request.headers.get(TENANT_HEADER, "").strip()
        if not identifier:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": f"Missing tenant context. Provide the {TENANT_HEADER} header."},
            )

        resolver = request.app.state.resolver
        try:
            tenant_ctx = await resolver.resolve(identifier)
        except UnknownTenantError:
            logger.info("tenant.resolution_failed", identifier=identifier, path=path)
            return _tenant_not_found()
        except Exception:
            # Same response whatever the cause; details stay in the log
            logger.error("tenant.resolution_error", identifier=identifier, path=path, exc_info=True)
            return _tenant_not_found()

        request.state.tenant_id = tenant_ctx.tenant_id
        request.state.tenant_subdomain = tenant_ctx.subdomain
        token = set_tenant_context(tenant_ctx)
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)
