"""Schema provisioner -- creates and drops isolated tenant schemas.

Provisioning copies the structure (never data) of every table in the
tenant table set from the template schema into the tenant schema:

    CREATE SCHEMA IF NOT EXISTS "tenant_x"
    CREATE TABLE IF NOT EXISTS "tenant_x"."students" (LIKE "<template>"."students" INCLUDING ALL)
    ...

Each table is a separate statement with IF NOT EXISTS, so a crash or
timeout mid-way leaves a state from which provision() can simply be run
again. LIKE does not copy foreign keys, so table order does not matter.

DDL runs on the control-plane handle; the tenant's own handle is only
touched to evict it before a drop.
"""

from __future__ import annotations

import structlog
from sqlalchemy import text
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    stop_after_attempt,
    wait_exponential,
)

from src.coleapp.core.errors import DeprovisioningError, ProvisioningError
from src.coleapp.core.monitoring import track_provisioning
from src.coleapp.core.naming import is_tenant_schema_name
from src.coleapp.core.registry import ConnectionRegistry

logger = structlog.get_logger(__name__)

# Bump when the list changes; adding a tenant-scoped entity means adding
# its table here (and to models.tenant), then running a schema resync.
TENANT_TABLE_SET_VERSION = 1

TENANT_TABLES: tuple[str, ...] = (
    "schools",
    "campuses",
    "locations",
    "persons",
    "students",
    "parents",
    "teachers",
    "classes",
    "family_relationships",
    "student_classes",
    "teacher_classes",
    "news",
    "news_targets",
    "news_reads",
    "events",
    "event_registrations",
    "messages",
    "message_recipients",
    "exit_permissions",
    "reports",
)


class SchemaProvisioner:
    """Brings tenant schemas into existence and tears them down.

    Args:
        registry: ConnectionRegistry supplying the control-plane handle and
            owning the tenant handles that must be evicted before a drop.
        template_schema: Schema holding the canonical tenant tables.
        tables: Tenant table set to replicate.
        deprovision_attempts: Attempts for DROP SCHEMA before giving up.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        template_schema: str,
        tables: tuple[str, ...] = TENANT_TABLES,
        deprovision_attempts: int = 3,
        retry_wait_max: float = 10.0,
    ) -> None:
        self._registry = registry
        self._template_schema = template_schema
        self._tables = tables
        self._deprovision_attempts = deprovision_attempts
        self._retry_wait_max = retry_wait_max

    @property
    def tables(self) -> tuple[str, ...]:
        return self._tables

    async def provision(self, schema_name: str) -> None:
        """Create schema_name and replicate every tenant table into it.

        Idempotent and safe to retry after any partial failure.

        Raises:
            ValueError: schema_name is not a tenant schema identifier.
            ProvisioningError: schema or table creation failed.
        """
        self._check_schema_name(schema_name)
        log = logger.bind(schema_name=schema_name)
        handle = await self._registry.control_plane()

        async with track_provisioning("provision"):
            try:
                async with handle.begin() as conn:
                    await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))
            except Exception as exc:
                log.error("provisioner.schema_create_failed", error=str(exc))
                raise ProvisioningError(schema_name, str(exc)) from exc

            for table in self._tables:
                try:
                    async with handle.begin() as conn:
                        await conn.execute(
                            text(
                                f'CREATE TABLE IF NOT EXISTS "{schema_name}"."{table}" '
                                f'(LIKE "{self._template_schema}"."{table}" INCLUDING ALL)'
                            )
                        )
                except Exception as exc:
                    log.error("provisioner.table_create_failed", table=table, error=str(exc))
                    raise ProvisioningError(schema_name, str(exc), table=table) from exc

        log.info("provisioner.schema_provisioned", table_count=len(self._tables))

    async def deprovision(self, schema_name: str) -> None:
        """Evict the tenant handle, then drop schema_name and all its data.

        Irreversible. Idempotent: dropping a missing schema succeeds.
        Transient failures are retried; the final failure is raised.

        Raises:
            ValueError: schema_name is not a tenant schema identifier.
            DeprovisioningError: the drop kept failing.
        """
        self._check_schema_name(schema_name)
        log = logger.bind(schema_name=schema_name)

        await self._registry.evict(schema_name)
        handle = await self._registry.control_plane()

        def log_retry(state: RetryCallState) -> None:
            log.warning(
                "provisioner.deprovision_retry",
                attempt=state.attempt_number,
                error=str(state.outcome.exception()) if state.outcome else None,
            )

        async with track_provisioning("deprovision"):
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._deprovision_attempts),
                    wait=wait_exponential(multiplier=0.5, max=self._retry_wait_max),
                    before_sleep=log_retry,
                ):
                    with attempt:
                        async with handle.begin() as conn:
                            await conn.execute(text(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE'))
            except RetryError as exc:
                error = exc.last_attempt.exception()
                log.error(
                    "provisioner.deprovision_failed",
                    attempts=self._deprovision_attempts,
                    error=str(error),
                )
                raise DeprovisioningError(schema_name, str(error)) from error

        log.info("provisioner.schema_dropped")

    async def schema_exists(self, schema_name: str) -> bool:
        handle = await self._registry.control_plane()
        async with handle.connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM information_schema.schemata WHERE schema_name = :schema"),
                {"schema": schema_name},
            )
            return result.first() is not None

    async def missing_tables(self, schema_name: str) -> list[str]:
        """Tenant tables not yet present in schema_name, in table-set order."""
        handle = await self._registry.control_plane()
        async with handle.connect() as conn:
            result = await conn.execute(
                text("SELECT table_name FROM information_schema.tables WHERE table_schema = :schema"),
                {"schema": schema_name},
            )
            present = {row[0] for row in result}
        return [table for table in self._tables if table not in present]

    def _check_schema_name(self, schema_name: str) -> None:
        if schema_name == self._template_schema or not is_tenant_schema_name(schema_name):
            raise ValueError(f"Refusing DDL on non-tenant schema: {schema_name!r}")
