"""Tests for ConnectionRegistry: one handle per schema, no cached failures."""

from __future__ import annotations

import asyncio

import pytest

from src.coleapp.core.errors import ConfigurationError, HandleConstructionError
from src.coleapp.core.registry import ConnectionRegistry

BASE_URL = "postgresql+asyncpg://test/coleapp"


class FakeHandle:
    def __init__(self, schema_name: str) -> None:
        self.schema_name = schema_name
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class CountingFactory:
    """Handle factory that yields to the loop and can fail on demand."""

    def __init__(self, failures: int = 0) -> None:
        self.calls: list[str] = []
        self.failures = failures

    async def __call__(self, schema_name: str) -> FakeHandle:
        self.calls.append(schema_name)
        # Give concurrent callers a chance to interleave
        for _ in range(3):
            await asyncio.sleep(0)
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        return FakeHandle(schema_name)


# ── get_handle ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_same_schema_returns_same_handle():
    factory = CountingFactory()
    registry = ConnectionRegistry(BASE_URL, handle_factory=factory)

    first = await registry.get_handle("tenant_a")
    second = await registry.get_handle("tenant_a")

    assert first is second
    assert factory.calls == ["tenant_a"]


@pytest.mark.asyncio
async def test_concurrent_first_requests_construct_once():
    factory = CountingFactory()
    registry = ConnectionRegistry(BASE_URL, handle_factory=factory)

    handles = await asyncio.gather(*(registry.get_handle("tenant_a") for _ in range(20)))

    assert all(h is handles[0] for h in handles)
    assert factory.calls == ["tenant_a"]
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_distinct_schemas_get_distinct_handles():
    registry = ConnectionRegistry(BASE_URL, handle_factory=CountingFactory())

    a, b = await asyncio.gather(registry.get_handle("tenant_a"), registry.get_handle("tenant_b"))

    assert a is not b
    assert a.schema_name == "tenant_a"
    assert b.schema_name == "tenant_b"
    assert sorted(registry.schema_names()) == ["tenant_a", "tenant_b"]


@pytest.mark.asyncio
async def test_construction_failure_is_not_cached():
    factory = CountingFactory(failures=1)
    registry = ConnectionRegistry(BASE_URL, handle_factory=factory)

    with pytest.raises(HandleConstructionError) as exc_info:
        await registry.get_handle("tenant_a")
    assert exc_info.value.schema_name == "tenant_a"
    assert isinstance(exc_info.value.original_error, OSError)
    assert "tenant_a" not in registry

    handle = await registry.get_handle("tenant_a")
    assert handle.schema_name == "tenant_a"
    assert factory.calls == ["tenant_a", "tenant_a"]


@pytest.mark.asyncio
async def test_concurrent_callers_share_construction_failure():
    factory = CountingFactory(failures=1)
    registry = ConnectionRegistry(BASE_URL, handle_factory=factory)

    results = await asyncio.gather(
        *(registry.get_handle("tenant_a") for _ in range(5)), return_exceptions=True
    )

    assert all(isinstance(r, HandleConstructionError) for r in results)
    assert factory.calls == ["tenant_a"]
    assert len(registry) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("base_url", [None, ""])
async def test_missing_base_url_raises_configuration_error(base_url):
    factory = CountingFactory()
    registry = ConnectionRegistry(base_url, handle_factory=factory)

    with pytest.raises(ConfigurationError):
        await registry.get_handle("tenant_a")
    assert factory.calls == []


@pytest.mark.asyncio
async def test_control_plane_uses_shared_schema():
    factory = CountingFactory()
    registry = ConnectionRegistry(BASE_URL, shared_schema="control", handle_factory=factory)

    handle = await registry.control_plane()

    assert handle.schema_name == "control"
    assert handle is await registry.get_handle("control")


# ── evict / close_all ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_evict_closes_and_forgets_handle():
    factory = CountingFactory()
    registry = ConnectionRegistry(BASE_URL, handle_factory=factory)
    handle = await registry.get_handle("tenant_a")

    await registry.evict("tenant_a")

    assert handle.closed
    assert "tenant_a" not in registry

    replacement = await registry.get_handle("tenant_a")
    assert replacement is not handle
    assert len(factory.calls) == 2


@pytest.mark.asyncio
async def test_evict_unknown_schema_is_noop():
    registry = ConnectionRegistry(BASE_URL, handle_factory=CountingFactory())

    await registry.evict("tenant_missing")
    await registry.evict("tenant_missing")

    assert len(registry) == 0


@pytest.mark.asyncio
async def test_evict_waits_for_inflight_construction():
    registry = ConnectionRegistry(BASE_URL, handle_factory=CountingFactory())

    pending = asyncio.create_task(registry.get_handle("tenant_a"))
    await asyncio.sleep(0)
    await registry.evict("tenant_a")
    handle = await pending

    assert handle.closed
    assert "tenant_a" not in registry


@pytest.mark.asyncio
async def test_close_all_closes_every_handle():
    registry = ConnectionRegistry(BASE_URL, handle_factory=CountingFactory())
    handles = [await registry.get_handle(name) for name in ("shared", "tenant_a", "tenant_b")]

    await registry.close_all()

    assert all(h.closed for h in handles)
    assert len(registry) == 0
