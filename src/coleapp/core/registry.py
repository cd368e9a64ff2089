"""Connection registry: schema name -> live ConnectionHandle.

The registry is the only component that opens database connections. It is
constructed explicitly (one per process, held on app.state) and injected
into the directory, provisioner, and coordinator, so tests can build a
fresh registry per case.

Concurrency: the handle map is mutated only between awaits on the event
loop. Concurrent first requests for the same schema share one in-flight
construction task, so at most one handle is ever built per schema name.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog

from src.coleapp.core.database import ConnectionHandle, build_handle
from src.coleapp.core.errors import ConfigurationError, HandleConstructionError
from src.coleapp.core.monitoring import handle_constructions_total, tenant_handles_open

logger = structlog.get_logger(__name__)

HandleFactory = Callable[[str], Awaitable[ConnectionHandle]]


class ConnectionRegistry:
    """Owns one ConnectionHandle per schema name.

    Args:
        base_url: Base database URL. Per-schema handles are derived from it.
        shared_schema: Control-plane schema name (see control_plane()).
        handle_factory: Optional async callable building a handle for a
            schema name. Defaults to build_handle() plus a connectivity ping.
        pool_size: Pool size for each tenant handle.
        max_overflow: Pool overflow for each tenant handle.
        control_plane_pool_size: Pool size for the control-plane handle.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        shared_schema: str = "shared",
        handle_factory: HandleFactory | None = None,
        pool_size: int = 5,
        max_overflow: int = 5,
        control_plane_pool_size: int = 10,
    ) -> None:
        self._base_url = base_url
        self._shared_schema = shared_schema
        self._factory = handle_factory or self._default_factory
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._control_plane_pool_size = control_plane_pool_size
        self._handles: dict[str, ConnectionHandle] = {}
        self._pending: dict[str, asyncio.Task[ConnectionHandle]] = {}

    # ── Public API ──────────────────────────────────────────────────────

    async def get_handle(self, schema_name: str) -> ConnectionHandle:
        """Return the cached handle for schema_name, creating it on first use.

        Raises:
            ConfigurationError: No base connection string is configured.
            HandleConstructionError: The handle could not be opened. Nothing
                is cached, so the next call retries cleanly.
        """
        handle = self._handles.get(schema_name)
        if handle is not None:
            return handle

        if not self._base_url:
            raise ConfigurationError("DATABASE_URL is not configured")

        task = self._pending.get(schema_name)
        if task is None:
            task = asyncio.create_task(self._construct(schema_name))
            self._pending[schema_name] = task
        # Shield so one caller's cancellation does not abort the shared build
        return await asyncio.shield(task)

    async def control_plane(self) -> ConnectionHandle:
        """Handle for the shared control-plane schema."""
        return await self.get_handle(self._shared_schema)

    async def evict(self, schema_name: str) -> None:
        """Close and forget the handle for schema_name. No-op if absent."""
        task = self._pending.get(schema_name)
        if task is not None:
            # A failed build cached nothing; there is nothing to close.
            with contextlib.suppress(HandleConstructionError):
                await asyncio.shield(task)

        handle = self._handles.pop(schema_name, None)
        if handle is None:
            return
        tenant_handles_open.dec()
        await handle.close()
        logger.info("registry.handle_evicted", schema_name=schema_name)

    async def close_all(self) -> None:
        """Close every cached handle. Called once at process shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending.values(), return_exceptions=True)
        handles = list(self._handles.items())
        self._handles.clear()
        for schema_name, handle in handles:
            tenant_handles_open.dec()
            try:
                await handle.close()
            except Exception:
                logger.error("registry.handle_close_failed", schema_name=schema_name, exc_info=True)
        logger.info("registry.closed", handle_count=len(handles))

    def schema_names(self) -> list[str]:
        """Schema names with a live handle."""
        return list(self._handles)

    def __contains__(self, schema_name: object) -> bool:
        return schema_name in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    # ── Internals ───────────────────────────────────────────────────────

    async def _construct(self, schema_name: str) -> ConnectionHandle:
        try:
            try:
                handle = await self._factory(schema_name)
            except HandleConstructionError:
                handle_constructions_total.labels(status="error").inc()
                raise
            except Exception as exc:
                handle_constructions_total.labels(status="error").inc()
                logger.warning("registry.handle_construction_failed", schema_name=schema_name, error=str(exc))
                raise HandleConstructionError(schema_name, exc) from exc

            self._handles[schema_name] = handle
            tenant_handles_open.inc()
            handle_constructions_total.labels(status="success").inc()
            logger.info("registry.handle_created", schema_name=schema_name)
            return handle
        finally:
            self._pending.pop(schema_name, None)

    async def _default_factory(self, schema_name: str) -> ConnectionHandle:
        assert self._base_url  # checked in get_handle
        if schema_name == self._shared_schema:
            translate = {"shared": schema_name}
            pool_size, max_overflow = self._control_plane_pool_size, self._max_overflow
        else:
            translate = {"tenant": schema_name}
            pool_size, max_overflow = self._pool_size, self._max_overflow

        handle = build_handle(
            self._base_url,
            schema_name,
            schema_translate_map=translate,
            pool_size=pool_size,
            max_overflow=max_overflow,
        )
        try:
            await handle.ping()
        except Exception:
            await handle.close()
            raise
        return handle
