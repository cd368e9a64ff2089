"""Async SQLAlchemy plumbing for schema-per-tenant isolation.

Provides:
- SharedBase: Declarative base for control-plane tables (placeholder schema="shared")
- TenantBase: Declarative base for per-tenant tables (placeholder schema="tenant")
- ConnectionHandle: an engine bound to exactly one schema
- build_handle(): derive a schema-bound handle from the base connection string
- init_db(): create the control-plane schema and the canonical tenant template
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import MetaData, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

# ── Declarative Bases ───────────────────────────────────────────────────────

shared_metadata = MetaData(schema="shared")
tenant_metadata = MetaData(schema="tenant")


class SharedBase(DeclarativeBase):
    """Base class for control-plane models (the tenant directory)."""

    metadata = shared_metadata


class TenantBase(DeclarativeBase):
    """Base class for per-tenant schema models.

    Uses placeholder schema="tenant" which is remapped at runtime via
    schema_translate_map to the actual tenant schema (e.g., "tenant_colegio_sur").
    """

    metadata = tenant_metadata


# ── Connection Handle ───────────────────────────────────────────────────────


class ConnectionHandle:
    """Data-access handle bound to exactly one schema.

    Owned by the ConnectionRegistry. Callers borrow it to open sessions or
    connections and must not close it themselves. The schema it targets is
    fixed at construction and deliberately not exposed.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        schema_translate_map: dict[str, str] | None = None,
    ) -> None:
        self._engine = engine
        self._bound = (
            engine.execution_options(schema_translate_map=schema_translate_map)
            if schema_translate_map
            else engine
        )
        self._sessionmaker = async_sessionmaker(self._bound, expire_on_commit=False)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an AsyncSession scoped to this handle's schema."""
        async with self._sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def connect(self) -> AsyncGenerator[AsyncConnection, None]:
        """Yield a raw connection (no implicit transaction commit)."""
        async with self._bound.connect() as conn:
            yield conn

    @asynccontextmanager
    async def begin(self) -> AsyncGenerator[AsyncConnection, None]:
        """Yield a connection inside a transaction committed on exit."""
        async with self._bound.begin() as conn:
            yield conn

    async def ping(self) -> None:
        """Round-trip a trivial query; raises on connectivity failure."""
        async with self._bound.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        """Dispose the underlying pool. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self._engine.dispose()


def _schema_connect_args(base_url: str, schema_name: str) -> dict[str, Any]:
    """Connection parameters that pin search_path to one schema."""
    driver = make_url(base_url).get_driver_name()
    if driver == "asyncpg":
        return {"server_settings": {"search_path": schema_name}}
    # libpq-based drivers (psycopg) take startup options instead
    return {"options": f"-csearch_path={schema_name}"}


def build_handle(
    base_url: str,
    schema_name: str,
    *,
    schema_translate_map: dict[str, str] | None = None,
    pool_size: int = 5,
    max_overflow: int = 5,
) -> ConnectionHandle:
    """Create a handle whose connections target schema_name.

    The base connection string is reused as-is; only the schema parameter
    (search_path) is substituted. No connection is opened here.
    """
    engine = create_async_engine(
        base_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args=_schema_connect_args(base_url, schema_name),
        echo=False,
    )

    # Reset session variables on every checkout so a SET issued during a
    # previous request never leaks into the next one. search_path survives
    # because it is a startup parameter, not a SET.
    @event.listens_for(engine.sync_engine, "checkout")
    def reset_session_state(dbapi_conn: Any, connection_record: Any, connection_proxy: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("RESET ALL")
        cursor.close()

    return ConnectionHandle(engine, schema_translate_map=schema_translate_map)


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db(handle: ConnectionHandle, shared_schema: str, template_schema: str) -> None:
    """Create the control-plane schema/tables and the tenant template schema.

    Idempotent: every statement is CREATE ... IF NOT EXISTS or checkfirst.
    """
    from src.coleapp.models import shared, tenant  # noqa: F401

    async with handle.begin() as conn:
        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{shared_schema}"'))
        await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{template_schema}"'))
        conn = await conn.execution_options(
            schema_translate_map={"shared": shared_schema, "tenant": template_schema}
        )
        await conn.run_sync(SharedBase.metadata.create_all)
        await conn.run_sync(TenantBase.metadata.create_all)
