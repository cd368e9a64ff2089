"""Pydantic schemas for the tenant directory and tenant API endpoints."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.coleapp.core.naming import MAX_IDENTIFIER_LENGTH, SCHEMA_PREFIX

# Longest subdomain whose derived schema name still fits an identifier.
MAX_SUBDOMAIN_LENGTH = MAX_IDENTIFIER_LENGTH - len(SCHEMA_PREFIX)


class ProvisioningStatus(str, Enum):
    provisioning = "provisioning"
    ready = "ready"
    failed = "failed"
    deprovisioning = "deprovisioning"


class TenantCreate(BaseModel):
    """Onboarding input for a new school."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name of the school",
        examples=["Colegio San José"],
    )
    subdomain: str = Field(
        ...,
        min_length=1,
        max_length=MAX_SUBDOMAIN_LENGTH,
        description="Unique public routing name; immutable once created",
        examples=["sanjose"],
    )
    contact_email: str | None = Field(default=None, max_length=255)
    contact_phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=255)


class TenantUpdate(BaseModel):
    """Mutable tenant fields. subdomain is intentionally absent."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    logo_url: str | None = Field(default=None, max_length=500)
    primary_color: str | None = Field(default=None, max_length=20)
    secondary_color: str | None = Field(default=None, max_length=20)
    contact_email: str | None = Field(default=None, max_length=255)
    contact_phone: str | None = Field(default=None, max_length=50)
    website: str | None = Field(default=None, max_length=255)


class TenantRecord(BaseModel):
    """Detached, read-only view of a directory entry."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    subdomain: str
    schema_name: str
    is_active: bool
    provisioning_status: ProvisioningStatus
    failure_reason: str | None = None
    logo_url: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    website: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TenantStats(BaseModel):
    """Entity counts inside one tenant schema."""

    students: int = 0
    parents: int = 0
    teachers: int = 0
    news: int = 0
    events: int = 0
    messages: int = 0
    exit_permissions: int = 0
    reports: int = 0


class TenantStatsEntry(BaseModel):
    """Per-tenant line of a cross-tenant statistics run."""

    tenant_id: str
    subdomain: str
    stats: TenantStats | None = None
    error: str | None = None


class SubdomainAvailability(BaseModel):
    subdomain: str
    available: bool


class CampusRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str | None = None
    is_main: bool


class SchoolRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    campuses: list[CampusRead] = Field(default_factory=list)
