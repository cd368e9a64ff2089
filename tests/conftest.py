"""Test fixtures for the tenancy core.

Provides:
- An aiosqlite-backed control plane (real unique constraints) wrapped in a
  ConnectionHandle, with the "shared" schema emulated by an attached database
- RecordingHandle: a fake ConnectionHandle that records executed SQL and can
  be told to fail on matching statements
- A ConnectionRegistry whose factory hands out RecordingHandles
- TenantRecord builder
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

import src.coleapp.models.shared  # noqa: F401
from src.coleapp.core.database import ConnectionHandle, SharedBase
from src.coleapp.core.registry import ConnectionRegistry
from src.coleapp.schemas.tenant import ProvisioningStatus, TenantRecord

# ── Control plane on SQLite ─────────────────────────────────────────────────


@pytest_asyncio.fixture
async def control_plane(tmp_path) -> AsyncGenerator[ConnectionHandle, None]:
    """ConnectionHandle over a file-backed SQLite control plane."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'control.db'}")
    shared_path = tmp_path / "shared.db"

    @event.listens_for(engine.sync_engine, "connect")
    def attach_shared(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute(f"ATTACH DATABASE '{shared_path}' AS shared")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(SharedBase.metadata.create_all)

    handle = ConnectionHandle(engine)
    yield handle
    await handle.close()


# ── Fake handles ────────────────────────────────────────────────────────────


class RecordingConnection:
    """Stands in for AsyncConnection: records SQL text, optionally fails."""

    def __init__(self, handle: RecordingHandle) -> None:
        self._handle = handle

    async def execute(self, statement, params=None):
        sql = str(statement)
        self._handle.statements.append(sql)
        for fragment, rule in self._handle.failures.items():
            remaining, error = rule
            if fragment in sql and (remaining is None or remaining > 0):
                if remaining is not None:
                    rule[0] = remaining - 1
                raise error
        return None


class RecordingHandle:
    """Fake ConnectionHandle for code that only issues DDL."""

    def __init__(self, schema_name: str = "") -> None:
        self.schema_name = schema_name
        self.statements: list[str] = []
        self.failures: dict[str, list] = {}
        self.closed = False

    def fail_on(self, fragment: str, *, times: int | None = None, error: Exception | None = None) -> None:
        """Raise error (default RuntimeError) for statements containing fragment."""
        self.failures[fragment] = [times, error or RuntimeError(f"simulated failure on {fragment}")]

    def clear_failures(self) -> None:
        self.failures.clear()

    @asynccontextmanager
    async def begin(self):
        yield RecordingConnection(self)

    @asynccontextmanager
    async def connect(self):
        yield RecordingConnection(self)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_handles() -> dict[str, RecordingHandle]:
    """Every RecordingHandle built by the fake registry, keyed by schema name."""
    return {}


@pytest.fixture
def registry(fake_handles) -> ConnectionRegistry:
    """Real ConnectionRegistry whose factory builds RecordingHandles."""

    async def factory(schema_name: str) -> RecordingHandle:
        handle = RecordingHandle(schema_name)
        fake_handles[schema_name] = handle
        return handle

    return ConnectionRegistry("postgresql+asyncpg://test/coleapp", handle_factory=factory)


# ── Records ─────────────────────────────────────────────────────────────────


def make_record(subdomain: str = "sanjose", *, is_active: bool = True, **overrides) -> TenantRecord:
    """Build a TenantRecord with sensible defaults."""
    now = datetime.now(timezone.utc)
    fields = {
        "id": str(uuid.uuid4()),
        "name": f"Colegio {subdomain}",
        "subdomain": subdomain,
        "schema_name": f"tenant_{subdomain}",
        "is_active": is_active,
        "provisioning_status": ProvisioningStatus.ready if is_active else ProvisioningStatus.provisioning,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return TenantRecord(**fields)


@pytest.fixture(name="make_record")
def make_record_fixture():
    return make_record
