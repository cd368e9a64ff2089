"""Tenant directory -- CRUD over the control-plane tenants table.

The directory is the single source of truth for the subdomain -> schema
mapping. It never runs DDL; provisioning is orchestrated by the
TenantCoordinator.

Uniqueness of subdomain and schema_name is enforced by the storage layer.
create() inserts without a prior existence check and translates the
constraint violation, so two racing inserts have exactly one winner.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from src.coleapp.core.database import ConnectionHandle
from src.coleapp.core.errors import SchemaNameConflictError, SubdomainTakenError, UnknownTenantError
from src.coleapp.core.naming import derive_schema_name
from src.coleapp.models.shared import Tenant
from src.coleapp.schemas.tenant import ProvisioningStatus, TenantCreate, TenantRecord, TenantUpdate

logger = structlog.get_logger(__name__)


def _model_to_record(model: Tenant) -> TenantRecord:
    """Convert a Tenant row to a detached TenantRecord."""
    return TenantRecord(
        id=str(model.id),
        name=model.name,
        subdomain=model.subdomain,
        schema_name=model.schema_name,
        is_active=model.is_active,
        provisioning_status=ProvisioningStatus(model.provisioning_status),
        failure_reason=model.failure_reason,
        logo_url=model.logo_url,
        primary_color=model.primary_color,
        secondary_color=model.secondary_color,
        contact_email=model.contact_email,
        contact_phone=model.contact_phone,
        website=model.website,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _parse_id(tenant_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError:
        return None


class TenantDirectory:
    """Async CRUD for TenantRecord on the control-plane handle.

    Args:
        handle: ConnectionHandle bound to the shared schema.
    """

    def __init__(self, handle: ConnectionHandle) -> None:
        self._handle = handle

    # ── Create ──────────────────────────────────────────────────────────

    async def create(self, data: TenantCreate) -> TenantRecord:
        """Insert a new tenant in the provisioning state.

        The record starts inactive; the coordinator activates it once the
        schema is provisioned and seeded.

        Raises:
            SubdomainTakenError: subdomain already registered.
            SchemaNameConflictError: derived schema name belongs to another tenant.
        """
        schema_name = derive_schema_name(data.subdomain)
        model = Tenant(
            name=data.name,
            subdomain=data.subdomain,
            schema_name=schema_name,
            is_active=False,
            provisioning_status=ProvisioningStatus.provisioning.value,
            contact_email=data.contact_email,
            contact_phone=data.contact_phone,
            website=data.website,
        )

        async with self._handle.session() as session:
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                integrity_error = exc
            else:
                integrity_error = None
                record = _model_to_record(model)

        if integrity_error is not None:
            # A taken subdomain also collides on schema_name; classify by stored rows
            if await self.find_by_subdomain(data.subdomain) is not None:
                raise SubdomainTakenError(data.subdomain) from integrity_error
            if await self.find_by_schema_name(schema_name) is not None:
                logger.error(
                    "directory.schema_name_conflict",
                    subdomain=data.subdomain,
                    schema_name=schema_name,
                )
                raise SchemaNameConflictError(schema_name, data.subdomain) from integrity_error
            raise integrity_error

        logger.info("directory.tenant_created", tenant_id=record.id, subdomain=record.subdomain)
        return record

    # ── Reads ───────────────────────────────────────────────────────────

    async def find_by_id(self, tenant_id: str) -> TenantRecord | None:
        parsed = _parse_id(tenant_id)
        if parsed is None:
            return None
        async with self._handle.session() as session:
            model = await session.get(Tenant, parsed)
            return _model_to_record(model) if model else None

    async def find_by_subdomain(self, subdomain: str) -> TenantRecord | None:
        return await self._find_one(Tenant.subdomain == subdomain)

    async def find_by_schema_name(self, schema_name: str) -> TenantRecord | None:
        return await self._find_one(Tenant.schema_name == schema_name)

    async def list_active(self) -> list[TenantRecord]:
        """Active tenants, newest first."""
        async with self._handle.session() as session:
            result = await session.execute(
                select(Tenant)
                .where(Tenant.is_active == True)  # noqa: E712
                .order_by(Tenant.created_at.desc())
            )
            return [_model_to_record(m) for m in result.scalars().all()]

    async def is_subdomain_available(self, subdomain: str) -> bool:
        return await self.find_by_subdomain(subdomain) is None

    # ── Updates ─────────────────────────────────────────────────────────

    async def update(self, tenant_id: str, data: TenantUpdate) -> TenantRecord:
        """Update branding/contact fields. subdomain and schema_name never change."""
        changes = data.model_dump(exclude_unset=True)
        return await self._apply(tenant_id, **changes)

    async def deactivate(self, tenant_id: str) -> TenantRecord:
        """Soft delete: hide from listings and routing. The schema is kept."""
        record = await self._apply(tenant_id, is_active=False)
        logger.info("directory.tenant_deactivated", tenant_id=tenant_id)
        return record

    async def activate(self, tenant_id: str) -> TenantRecord:
        """Mark onboarding complete: active, ready, no failure reason."""
        return await self._apply(
            tenant_id,
            is_active=True,
            provisioning_status=ProvisioningStatus.ready.value,
            failure_reason=None,
        )

    async def mark_failed(self, tenant_id: str, reason: str) -> TenantRecord:
        """Flag an entry whose schema is missing or unusable."""
        record = await self._apply(
            tenant_id,
            is_active=False,
            provisioning_status=ProvisioningStatus.failed.value,
            failure_reason=reason,
        )
        logger.warning("directory.tenant_marked_failed", tenant_id=tenant_id, reason=reason)
        return record

    async def mark_deprovisioning(self, tenant_id: str) -> TenantRecord:
        return await self._apply(
            tenant_id,
            is_active=False,
            provisioning_status=ProvisioningStatus.deprovisioning.value,
        )

    async def delete(self, tenant_id: str) -> bool:
        """Remove the entry. Returns False if it did not exist."""
        parsed = _parse_id(tenant_id)
        if parsed is None:
            return False
        async with self._handle.session() as session:
            model = await session.get(Tenant, parsed)
            if model is None:
                return False
            await session.delete(model)
            await session.commit()
        logger.info("directory.tenant_deleted", tenant_id=tenant_id)
        return True

    # ── Internals ───────────────────────────────────────────────────────

    async def _find_one(self, clause) -> TenantRecord | None:
        async with self._handle.session() as session:
            result = await session.execute(select(Tenant).where(clause))
            model = result.scalar_one_or_none()
            return _model_to_record(model) if model else None

    async def _apply(self, tenant_id: str, **changes) -> TenantRecord:
        parsed = _parse_id(tenant_id)
        if parsed is None:
            raise UnknownTenantError(tenant_id)
        async with self._handle.session() as session:
            model = await session.get(Tenant, parsed)
            if model is None:
                raise UnknownTenantError(tenant_id)
            for field, value in changes.items():
                setattr(model, field, value)
            await session.commit()
            return _model_to_record(model)
