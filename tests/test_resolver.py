"""Tests for TenantResolver (Redis-cached lookup) and TenantGateway."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.coleapp.core.errors import UnknownTenantError
from src.coleapp.core.tenant import TenantContext
from src.coleapp.services.resolver import TenantGateway, TenantResolver


@pytest.fixture
def directory():
    directory = MagicMock()
    directory.find_by_id = AsyncMock(return_value=None)
    directory.find_by_subdomain = AsyncMock(return_value=None)
    return directory


@pytest.fixture
def redis():
    redis = AsyncMock()
    redis.get.return_value = None
    return redis


# ── resolve ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_resolve_by_subdomain(directory, make_record):
    record = make_record("sanjose")
    directory.find_by_subdomain.return_value = record

    ctx = await TenantResolver(directory).resolve("sanjose")

    assert ctx == TenantContext(tenant_id=record.id, subdomain="sanjose", schema_name="tenant_sanjose")
    directory.find_by_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_by_id(directory, make_record):
    record = make_record("sanjose")
    directory.find_by_id.return_value = record

    ctx = await TenantResolver(directory).resolve(record.id)

    assert ctx.tenant_id == record.id
    directory.find_by_id.assert_awaited_once_with(record.id)
    directory.find_by_subdomain.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_tenant_raises(directory):
    with pytest.raises(UnknownTenantError):
        await TenantResolver(directory).resolve("nadie")


@pytest.mark.asyncio
async def test_inactive_tenant_does_not_resolve(directory, make_record):
    directory.find_by_subdomain.return_value = make_record("sanjose", is_active=False)

    with pytest.raises(UnknownTenantError):
        await TenantResolver(directory).resolve("sanjose")


# ── Redis cache ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_resolution_is_cached(directory, redis, make_record):
    record = make_record("sanjose")
    directory.find_by_subdomain.return_value = record

    await TenantResolver(directory, redis=redis, ttl=120).resolve("sanjose")

    key, payload = redis.set.await_args.args
    assert key == "tenant:lookup:sanjose"
    assert json.loads(payload)["schema_name"] == "tenant_sanjose"
    assert redis.set.await_args.kwargs == {"ex": 120}


@pytest.mark.asyncio
async def test_cache_hit_skips_directory(directory, redis):
    redis.get.return_value = json.dumps(
        {"tenant_id": "t-1", "subdomain": "sanjose", "schema_name": "tenant_sanjose"}
    )

    ctx = await TenantResolver(directory, redis=redis).resolve("sanjose")

    assert ctx.schema_name == "tenant_sanjose"
    directory.find_by_subdomain.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_failure_falls_back_to_directory(directory, redis, make_record):
    redis.get.side_effect = ConnectionError("redis down")
    redis.set.side_effect = ConnectionError("redis down")
    directory.find_by_subdomain.return_value = make_record("sanjose")

    ctx = await TenantResolver(directory, redis=redis).resolve("sanjose")

    assert ctx.subdomain == "sanjose"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["not-json", '["tenant_sanjose"]', '{"schema_name": "tenant_sanjose"}'])
async def test_corrupt_cache_entry_falls_back_to_directory(directory, redis, make_record, raw):
    redis.get.return_value = raw
    directory.find_by_subdomain.return_value = make_record("sanjose")

    ctx = await TenantResolver(directory, redis=redis).resolve("sanjose")

    assert ctx.schema_name == "tenant_sanjose"
    directory.find_by_subdomain.assert_awaited_once_with("sanjose")


@pytest.mark.asyncio
@pytest.mark.parametrize("spelling", [str.upper, lambda i: "{" + i + "}", lambda i: i.replace("-", "")])
async def test_any_id_spelling_uses_canonical_cache_key(directory, redis, make_record, spelling):
    record = make_record("sanjose")
    directory.find_by_id.return_value = record

    await TenantResolver(directory, redis=redis).resolve(spelling(record.id))

    directory.find_by_id.assert_awaited_once_with(record.id)
    redis.get.assert_awaited_once_with(f"tenant:lookup:{record.id}")
    assert redis.set.await_args.args[0] == f"tenant:lookup:{record.id}"


@pytest.mark.asyncio
async def test_invalidate_covers_non_canonical_id_lookups(directory, make_record):
    store: dict[str, str] = {}
    redis = AsyncMock()
    redis.get.side_effect = store.get

    async def set_(key, value, ex=None):
        store[key] = value

    async def delete(*keys):
        for key in keys:
            store.pop(key, None)

    redis.set.side_effect = set_
    redis.delete.side_effect = delete
    record = make_record("sanjose")
    directory.find_by_id.return_value = record
    resolver = TenantResolver(directory, redis=redis)

    await resolver.resolve(record.id.upper())
    await resolver.invalidate(record)
    directory.find_by_id.return_value = None

    with pytest.raises(UnknownTenantError):
        await resolver.resolve(record.id.upper())


@pytest.mark.asyncio
async def test_invalidate_drops_id_and_subdomain_keys(directory, redis, make_record):
    record = make_record("sanjose")

    await TenantResolver(directory, redis=redis).invalidate(record)

    redis.delete.assert_awaited_once_with(f"tenant:lookup:{record.id}", "tenant:lookup:sanjose")


# ── Gateway ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_gateway_returns_resolved_tenant_handle(directory, registry, make_record):
    directory.find_by_subdomain.return_value = make_record("sanjose")
    gateway = TenantGateway(TenantResolver(directory), registry)

    handle = await gateway.get_tenant_handle("sanjose")

    assert handle is await registry.get_handle("tenant_sanjose")


@pytest.mark.asyncio
async def test_gateway_never_opens_handle_for_unknown_tenant(directory, registry):
    gateway = TenantGateway(TenantResolver(directory), registry)

    with pytest.raises(UnknownTenantError):
        await gateway.get_tenant_handle("nadie")

    assert len(registry) == 0
