"""FastAPI dependency injection for tenancy services and tenant-scoped resources.

Services are built once in the application lifespan and held on app.state;
these dependencies hand them to endpoint functions.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.coleapp.core.database import ConnectionHandle
from src.coleapp.core.registry import ConnectionRegistry
from src.coleapp.core.tenant import TenantContext, get_current_tenant
from src.coleapp.services.coordinator import TenantCoordinator
from src.coleapp.services.directory import TenantDirectory
from src.coleapp.services.resolver import TenantGateway


async def get_tenant() -> TenantContext:
    """Get the current tenant context (set by TenantMiddleware)."""
    return get_current_tenant()


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_directory(request: Request) -> TenantDirectory:
    return request.app.state.directory


def get_coordinator(request: Request) -> TenantCoordinator:
    return request.app.state.coordinator


def get_gateway(request: Request) -> TenantGateway:
    return request.app.state.gateway


async def get_tenant_handle(
    tenant: TenantContext = Depends(get_tenant),
    gateway: TenantGateway = Depends(get_gateway),
) -> ConnectionHandle:
    """Handle bound to the current request's tenant schema."""
    return await gateway.handle_for_context(tenant)


async def get_db(handle: ConnectionHandle = Depends(get_tenant_handle)) -> AsyncGenerator[AsyncSession, None]:
    """Get a tenant-scoped database session."""
    async with handle.session() as session:
        yield session
