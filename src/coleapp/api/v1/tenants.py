"""Tenant management API endpoints.

These endpoints skip tenant middleware (no X-Tenant-ID needed)
since they are operator/provisioning endpoints. Tenancy errors raised
here are translated to HTTP statuses by the handlers in main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.coleapp.api.deps import get_coordinator, get_directory
from src.coleapp.schemas.tenant import (
    SubdomainAvailability,
    TenantCreate,
    TenantRecord,
    TenantStats,
    TenantStatsEntry,
    TenantUpdate,
)
from src.coleapp.services.coordinator import TenantCoordinator
from src.coleapp.services.directory import TenantDirectory

router = APIRouter(prefix="/api/v1/tenants", tags=["tenants"])


@router.post("", response_model=TenantRecord, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    coordinator: TenantCoordinator = Depends(get_coordinator),
):
    """Onboard a new school: directory entry, isolated schema, seed data."""
    return await coordinator.onboard_tenant(body)


@router.get("", response_model=list[TenantRecord])
async def list_tenants(directory: TenantDirectory = Depends(get_directory)):
    """List active tenants, newest first."""
    return await directory.list_active()


@router.get("/stats", response_model=list[TenantStatsEntry])
async def all_tenant_stats(coordinator: TenantCoordinator = Depends(get_coordinator)):
    """Entity counts for every active tenant. A failing tenant reports an error entry."""
    return await coordinator.collect_stats()


@router.get("/by-subdomain/{subdomain}", response_model=TenantRecord)
async def get_tenant_by_subdomain(subdomain: str, directory: TenantDirectory = Depends(get_directory)):
    record = await directory.find_by_subdomain(subdomain)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return record


@router.get("/availability/{subdomain}", response_model=SubdomainAvailability)
async def check_subdomain_availability(subdomain: str, directory: TenantDirectory = Depends(get_directory)):
    return SubdomainAvailability(
        subdomain=subdomain,
        available=await directory.is_subdomain_available(subdomain),
    )


@router.get("/{tenant_id}", response_model=TenantRecord)
async def get_tenant(tenant_id: str, directory: TenantDirectory = Depends(get_directory)):
    record = await directory.find_by_id(tenant_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return record


@router.patch("/{tenant_id}", response_model=TenantRecord)
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    directory: TenantDirectory = Depends(get_directory),
):
    """Update branding and contact fields. The subdomain cannot be changed."""
    return await directory.update(tenant_id, body)


@router.post("/{tenant_id}/deactivate", response_model=TenantRecord)
async def deactivate_tenant(tenant_id: str, coordinator: TenantCoordinator = Depends(get_coordinator)):
    """Soft delete: the tenant stops resolving; its data is kept."""
    return await coordinator.deactivate_tenant(tenant_id)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deprovision_tenant(tenant_id: str, coordinator: TenantCoordinator = Depends(get_coordinator)):
    """Hard delete: drops the tenant schema and all of its data. Irreversible."""
    await coordinator.deprovision_tenant(tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{tenant_id}/stats", response_model=TenantStats)
async def tenant_stats(tenant_id: str, coordinator: TenantCoordinator = Depends(get_coordinator)):
    return await coordinator.tenant_stats(tenant_id)
