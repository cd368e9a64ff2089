"""Cross-schema coordinator for tenant lifecycle and multi-tenant operations.

PostgreSQL cannot run one transaction across the control-plane row insert
and the tenant schema DDL (they are separate connections, and DDL such as
CREATE SCHEMA is not undone by the directory transaction). Onboarding is
therefore a saga: each completed step registers a compensation, and on
failure the compensations run in reverse order.

    1. directory.create        -> compensate: delete record (or flag it failed)
    2. provisioner.provision   -> compensate: drop the partial schema
    3. seed School + Campus    (inside the schema dropped by 2)
    4. directory.activate

The invariant kept: a directory entry and its schema exist together. The
only exception is a record flagged inactive with provisioning_status
"provisioning" (in flight) or "failed" (with failure_reason), never an
active tenant without a usable schema.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from src.coleapp.core.database import ConnectionHandle
from src.coleapp.core.errors import (
    CrossSchemaOperationError,
    DeprovisioningError,
    ProvisioningError,
    UnknownTenantError,
)
from src.coleapp.core.registry import ConnectionRegistry
from src.coleapp.schemas.tenant import (
    TenantCreate,
    TenantRecord,
    TenantStats,
    TenantStatsEntry,
)
from src.coleapp.services.directory import TenantDirectory
from src.coleapp.services.provisioner import SchemaProvisioner
from src.coleapp.services.resolver import TenantResolver
from src.coleapp.services.stats import count_tenant_entities, seed_default_school

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Compensation: receives the triggering error and the names of
# compensations that already failed during this rollback.
Compensation = Callable[[BaseException, list[str]], Awaitable[None]]


@dataclass
class SchemaResult(Generic[T]):
    """Outcome of an operation against one schema."""

    schema_name: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TenantCoordinator:
    """Orchestrates directory, provisioner, and registry.

    Args:
        registry: ConnectionRegistry owning every handle.
        directory: TenantDirectory on the control plane.
        provisioner: SchemaProvisioner for DDL.
        resolver: Optional TenantResolver whose cache is invalidated when a
            tenant stops being routable.
        concurrency: Default bound on schemas processed at once.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        directory: TenantDirectory,
        provisioner: SchemaProvisioner,
        *,
        resolver: TenantResolver | None = None,
        concurrency: int = 4,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._provisioner = provisioner
        self._resolver = resolver
        self._concurrency = max(1, concurrency)

    # ── Onboarding ──────────────────────────────────────────────────────

    async def onboard_tenant(self, data: TenantCreate) -> TenantRecord:
        """Register, provision, seed, and activate a new tenant.

        Raises:
            SubdomainTakenError: subdomain already registered (nothing to undo).
            SchemaNameConflictError: derived schema belongs to another tenant.
            ProvisioningError: DDL or seeding failed; state was rolled back.
        """
        log = logger.bind(subdomain=data.subdomain)
        log.info("coordinator.onboard_started")

        record = await self._directory.create(data)
        log = log.bind(tenant_id=record.id, schema_name=record.schema_name)

        compensations: list[tuple[str, Compensation]] = [
            ("release_directory_record", self._release_record_compensation(record)),
        ]
        try:
            # Registered before provisioning: a partial schema is cleaned up too
            compensations.append(("drop_schema", self._drop_schema_compensation(record.schema_name)))
            await self._provisioner.provision(record.schema_name)

            try:
                handle = await self._registry.get_handle(record.schema_name)
                await seed_default_school(handle, record.name)
            except Exception as exc:
                log.error("coordinator.seed_failed", error=str(exc))
                raise ProvisioningError(record.schema_name, str(exc), operation="seed") from exc

            record = await self._directory.activate(record.id)
        except (Exception, asyncio.CancelledError) as exc:
            # Cancellation rolls back too; compensations survive a second cancel
            log.error("coordinator.onboard_failed", error=str(exc), error_type=type(exc).__name__)
            await asyncio.shield(self._rollback(compensations, exc, log))
            raise

        log.info("coordinator.onboard_completed")
        return record

    def _drop_schema_compensation(self, schema_name: str) -> Compensation:
        async def compensate(error: BaseException, failed: list[str]) -> None:
            await self._provisioner.deprovision(schema_name)

        return compensate

    def _release_record_compensation(self, record: TenantRecord) -> Compensation:
        async def compensate(error: BaseException, failed: list[str]) -> None:
            if "drop_schema" in failed:
                # The schema may still exist; keep the entry so it is not orphaned
                await self._directory.mark_failed(
                    record.id, f"onboarding failed and schema cleanup failed: {error}"
                )
                return
            try:
                await self._directory.delete(record.id)
            except Exception:
                logger.warning("coordinator.record_delete_failed", tenant_id=record.id, exc_info=True)
                await self._directory.mark_failed(record.id, f"onboarding failed: {error}")

        return compensate

    async def _rollback(
        self,
        compensations: list[tuple[str, Compensation]],
        error: BaseException,
        log: Any,
    ) -> None:
        failed: list[str] = []
        for name, compensate in reversed(compensations):
            try:
                await compensate(error, failed)
            except Exception as comp_exc:
                failed.append(name)
                log.error("coordinator.compensation_failed", step=name, error=str(comp_exc))
            else:
                log.info("coordinator.compensation_applied", step=name)

    # ── Cross-schema execution ──────────────────────────────────────────

    async def run_across_schemas(
        self,
        schema_names: Sequence[str],
        op: Callable[[ConnectionHandle], Awaitable[T]],
        *,
        all_or_nothing: bool = False,
        concurrency: int | None = None,
    ) -> list[SchemaResult[T]]:
        """Run op against each schema's handle; results follow input order.

        By default a failing schema yields a SchemaResult with error set and
        does not affect the others. With all_or_nothing=True schemas run one
        by one and the first failure raises CrossSchemaOperationError
        carrying the results completed so far (their effects are not undone).
        """

        async def run_one(schema_name: str) -> T:
            handle = await self._registry.get_handle(schema_name)
            return await op(handle)

        if all_or_nothing:
            completed: list[SchemaResult[T]] = []
            for schema_name in schema_names:
                try:
                    value = await run_one(schema_name)
                except Exception as exc:
                    logger.error("coordinator.cross_schema_aborted", schema_name=schema_name, error=str(exc))
                    raise CrossSchemaOperationError(schema_name, exc, completed) from exc
                completed.append(SchemaResult(schema_name, value=value))
            return completed

        return await self._gather_isolated(schema_names, run_one, concurrency)

    async def _gather_isolated(
        self,
        schema_names: Sequence[str],
        fn: Callable[[str], Awaitable[T]],
        concurrency: int | None,
    ) -> list[SchemaResult[T]]:
        semaphore = asyncio.Semaphore(concurrency or self._concurrency)

        async def guarded(schema_name: str) -> SchemaResult[T]:
            async with semaphore:
                try:
                    return SchemaResult(schema_name, value=await fn(schema_name))
                except Exception as exc:
                    logger.warning("coordinator.schema_operation_failed", schema_name=schema_name, error=str(exc))
                    return SchemaResult(schema_name, error=exc)

        return list(await asyncio.gather(*(guarded(name) for name in schema_names)))

    # ── Teardown ────────────────────────────────────────────────────────

    async def deactivate_tenant(self, tenant_id: str) -> TenantRecord:
        """Soft delete: stop routing to the tenant. The schema is kept."""
        record = await self._directory.deactivate(tenant_id)
        await self._forget(record)
        await self._registry.evict(record.schema_name)
        return record

    async def deprovision_tenant(self, tenant_id: str) -> None:
        """Hard delete: drop the tenant schema and its directory entry.

        Irreversible. If the drop fails the entry stays, inactive and
        flagged failed, so the leaked schema remains discoverable.
        """
        record = await self._directory.find_by_id(tenant_id)
        if record is None:
            raise UnknownTenantError(tenant_id)
        log = logger.bind(tenant_id=record.id, schema_name=record.schema_name)

        record = await self._directory.mark_deprovisioning(record.id)
        await self._forget(record)
        try:
            await self._provisioner.deprovision(record.schema_name)
        except DeprovisioningError as exc:
            await self._directory.mark_failed(record.id, f"deprovision failed: {exc}")
            raise
        await self._directory.delete(record.id)
        log.info("coordinator.tenant_deprovisioned")

    async def _forget(self, record: TenantRecord) -> None:
        if self._resolver is not None:
            await self._resolver.invalidate(record)

    # ── Maintenance & reporting ─────────────────────────────────────────

    async def resync_tenant_schemas(self) -> list[SchemaResult[None]]:
        """Re-run provision() for every active tenant.

        Replicates tables added to the tenant table set since a tenant was
        onboarded. Existing tables are left untouched.
        """
        tenants = await self._directory.list_active()
        results = await self._gather_isolated(
            [t.schema_name for t in tenants], self._provisioner.provision, None
        )
        logger.info(
            "coordinator.resync_completed",
            total=len(results),
            failed=sum(1 for r in results if not r.ok),
        )
        return results

    async def tenant_stats(self, tenant_id: str) -> TenantStats:
        record = await self._directory.find_by_id(tenant_id)
        if record is None:
            raise UnknownTenantError(tenant_id)
        handle = await self._registry.get_handle(record.schema_name)
        return await count_tenant_entities(handle)

    async def collect_stats(self, tenant_ids: Sequence[str] | None = None) -> list[TenantStatsEntry]:
        """Entity counts for the given tenants (default: all active)."""
        if tenant_ids is None:
            records = await self._directory.list_active()
        else:
            records = []
            for tenant_id in tenant_ids:
                record = await self._directory.find_by_id(tenant_id)
                if record is None:
                    raise UnknownTenantError(tenant_id)
                records.append(record)

        results = await self.run_across_schemas([r.schema_name for r in records], count_tenant_entities)
        return [
            TenantStatsEntry(
                tenant_id=record.id,
                subdomain=record.subdomain,
                stats=result.value,
                error=None if result.ok else type(result.error).__name__,
            )
            for record, result in zip(records, results)
        ]
