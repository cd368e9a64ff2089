"""Tests for SchemaProvisioner DDL, idempotency, and teardown."""

from __future__ import annotations

import pytest

import src.coleapp.models.tenant  # noqa: F401
from src.coleapp.core.database import TenantBase
from src.coleapp.core.errors import DeprovisioningError, ProvisioningError
from src.coleapp.services.provisioner import TENANT_TABLES, SchemaProvisioner

TEMPLATE = "coleapp_template"


@pytest.fixture
def provisioner(registry) -> SchemaProvisioner:
    return SchemaProvisioner(registry, template_schema=TEMPLATE, retry_wait_max=0)


async def _control_plane(registry):
    return await registry.control_plane()


# ── Table set ───────────────────────────────────────────────────────────────


def test_tenant_tables_match_tenant_models():
    """Every tenant model is replicated, and nothing else."""
    model_tables = {table.name for table in TenantBase.metadata.sorted_tables}
    assert set(TENANT_TABLES) == model_tables
    assert len(TENANT_TABLES) == len(set(TENANT_TABLES)) == 20


# ── provision ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_provision_creates_schema_then_every_table(provisioner, registry):
    await provisioner.provision("tenant_sanjose")

    statements = (await _control_plane(registry)).statements
    assert statements[0] == 'CREATE SCHEMA IF NOT EXISTS "tenant_sanjose"'
    assert len(statements) == 1 + len(TENANT_TABLES)
    for statement, table in zip(statements[1:], TENANT_TABLES):
        assert statement == (
            f'CREATE TABLE IF NOT EXISTS "tenant_sanjose"."{table}" '
            f'(LIKE "{TEMPLATE}"."{table}" INCLUDING ALL)'
        )


@pytest.mark.asyncio
async def test_provision_does_not_open_tenant_handle(provisioner, registry):
    await provisioner.provision("tenant_sanjose")

    assert "tenant_sanjose" not in registry


@pytest.mark.asyncio
async def test_provision_is_idempotent(provisioner, registry):
    await provisioner.provision("tenant_sanjose")
    await provisioner.provision("tenant_sanjose")

    statements = (await _control_plane(registry)).statements
    assert all("IF NOT EXISTS" in s for s in statements)
    assert len(statements) == 2 * (1 + len(TENANT_TABLES))


@pytest.mark.asyncio
async def test_table_failure_names_the_table(provisioner, registry):
    control = await _control_plane(registry)
    control.fail_on('"tenant_sanjose"."students"')

    with pytest.raises(ProvisioningError) as exc_info:
        await provisioner.provision("tenant_sanjose")

    error = exc_info.value
    assert error.schema_name == "tenant_sanjose"
    assert error.table == "students"
    assert error.operation == "provision"
    # Stopped at the failing table
    assert not any('"tenant_sanjose"."parents"' in s for s in control.statements)


@pytest.mark.asyncio
async def test_partial_provision_can_be_retried(provisioner, registry):
    control = await _control_plane(registry)
    control.fail_on('"tenant_sanjose"."news"', times=1)

    with pytest.raises(ProvisioningError):
        await provisioner.provision("tenant_sanjose")
    await provisioner.provision("tenant_sanjose")

    assert control.statements[-1].startswith('CREATE TABLE IF NOT EXISTS "tenant_sanjose"."reports"')


@pytest.mark.asyncio
async def test_schema_failure_has_no_table(provisioner, registry):
    control = await _control_plane(registry)
    control.fail_on("CREATE SCHEMA")

    with pytest.raises(ProvisioningError) as exc_info:
        await provisioner.provision("tenant_sanjose")

    assert exc_info.value.table is None
    assert len(control.statements) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("schema_name", [TEMPLATE, "shared", "public", "tenant_x; DROP SCHEMA shared"])
async def test_refuses_non_tenant_schemas(provisioner, registry, schema_name):
    with pytest.raises(ValueError):
        await provisioner.provision(schema_name)
    with pytest.raises(ValueError):
        await provisioner.deprovision(schema_name)
    assert len(registry) == 0


# ── deprovision ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_deprovision_evicts_handle_before_drop(provisioner, registry, fake_handles):
    tenant_handle = await registry.get_handle("tenant_sanjose")

    await provisioner.deprovision("tenant_sanjose")

    assert tenant_handle.closed
    assert "tenant_sanjose" not in registry
    assert fake_handles["shared"].statements == ['DROP SCHEMA IF EXISTS "tenant_sanjose" CASCADE']


@pytest.mark.asyncio
async def test_deprovision_twice_succeeds(provisioner, registry):
    await provisioner.deprovision("tenant_sanjose")
    await provisioner.deprovision("tenant_sanjose")

    assert len((await _control_plane(registry)).statements) == 2


@pytest.mark.asyncio
async def test_deprovision_retries_transient_failures(provisioner, registry):
    control = await _control_plane(registry)
    control.fail_on("DROP SCHEMA", times=2)

    await provisioner.deprovision("tenant_sanjose")

    assert len(control.statements) == 3


@pytest.mark.asyncio
async def test_deprovision_gives_up_after_max_attempts(registry):
    provisioner = SchemaProvisioner(
        registry, template_schema=TEMPLATE, deprovision_attempts=2, retry_wait_max=0
    )
    control = await _control_plane(registry)
    control.fail_on("DROP SCHEMA")

    with pytest.raises(DeprovisioningError) as exc_info:
        await provisioner.deprovision("tenant_sanjose")

    assert exc_info.value.operation == "deprovision"
    assert exc_info.value.schema_name == "tenant_sanjose"
    assert len(control.statements) == 2
