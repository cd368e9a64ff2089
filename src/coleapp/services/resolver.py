"""Tenant resolution: request identifier -> TenantContext -> handle.

The resolver turns an externally supplied identifier (tenant id or
subdomain) into a TenantContext, consulting an optional Redis cache in
front of the directory. Only active tenants resolve.

The gateway is the single entry point request code uses to obtain a
tenant handle; it never hands out schema names.
"""

from __future__ import annotations

import json
import uuid

import structlog
from redis import asyncio as aioredis

from src.coleapp.core.database import ConnectionHandle
from src.coleapp.core.errors import UnknownTenantError
from src.coleapp.core.registry import ConnectionRegistry
from src.coleapp.core.tenant import TenantContext
from src.coleapp.schemas.tenant import TenantRecord
from src.coleapp.services.directory import TenantDirectory

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "tenant:lookup:"


def _cache_key(identifier: str) -> str:
    return f"{CACHE_KEY_PREFIX}{identifier}"


def _canonical_id(identifier: str) -> str | None:
    """Canonical spelling of a tenant id, or None when identifier is not one.

    Any UUID spelling (upper case, braces, no dashes) maps to the same
    cache key that invalidate() deletes.
    """
    try:
        return str(uuid.UUID(identifier))
    except ValueError:
        return None


class TenantResolver:
    """Resolve tenant identifiers to contexts.

    Args:
        directory: TenantDirectory used on cache miss.
        redis: Optional Redis client. Cache failures degrade to a
            directory lookup and are never raised.
        ttl: Cache entry lifetime in seconds.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        redis: aioredis.Redis | None = None,
        ttl: int = 300,
    ) -> None:
        self._directory = directory
        self._redis = redis
        self._ttl = ttl

    async def resolve(self, identifier: str) -> TenantContext:
        """Return the context of the active tenant named by identifier.

        Raises:
            UnknownTenantError: no active tenant matches.
        """
        tenant_id = _canonical_id(identifier)
        key_identifier = tenant_id or identifier

        cached = await self._cache_get(key_identifier)
        if cached is not None:
            return cached

        if tenant_id is not None:
            record = await self._directory.find_by_id(tenant_id)
        else:
            record = await self._directory.find_by_subdomain(identifier)

        if record is None or not record.is_active:
            raise UnknownTenantError(identifier)

        ctx = TenantContext(
            tenant_id=record.id,
            subdomain=record.subdomain,
            schema_name=record.schema_name,
        )
        await self._cache_set(key_identifier, ctx)
        return ctx

    async def invalidate(self, record: TenantRecord) -> None:
        """Drop cached lookups for record (by id and by subdomain)."""
        if self._redis is None:
            return
        try:
            await self._redis.delete(_cache_key(record.id), _cache_key(record.subdomain))
        except Exception as exc:
            logger.warning("resolver.cache_invalidate_failed", tenant_id=record.id, error=str(exc))

    async def _cache_get(self, identifier: str) -> TenantContext | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(_cache_key(identifier))
        except Exception as exc:
            logger.warning("resolver.cache_read_failed", error=str(exc))
            return None
        if not raw:
            return None
        try:
            return TenantContext(**json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning("resolver.cache_decode_failed", identifier=identifier, error=str(exc))
            return None

    async def _cache_set(self, identifier: str, ctx: TenantContext) -> None:
        if self._redis is None:
            return
        payload = json.dumps(
            {"tenant_id": ctx.tenant_id, "subdomain": ctx.subdomain, "schema_name": ctx.schema_name}
        )
        try:
            await self._redis.set(_cache_key(identifier), payload, ex=self._ttl)
        except Exception as exc:
            logger.warning("resolver.cache_write_failed", error=str(exc))


class TenantGateway:
    """Hands request code the handle for a tenant, never its schema name."""

    def __init__(self, resolver: TenantResolver, registry: ConnectionRegistry) -> None:
        self._resolver = resolver
        self._registry = registry

    async def get_tenant_handle(self, identifier: str) -> ConnectionHandle:
        """Resolve identifier and return the tenant's handle.

        Raises:
            UnknownTenantError: no active tenant matches.
            HandleConstructionError: the tenant's handle could not be opened.
        """
        ctx = await self._resolver.resolve(identifier)
        return await self.handle_for_context(ctx)

    async def handle_for_context(self, ctx: TenantContext) -> ConnectionHandle:
        return await self._registry.get_handle(ctx.schema_name)
