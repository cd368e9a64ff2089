"""Tests for per-tenant seed data and entity counts."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.coleapp.models.tenant import School
from src.coleapp.services.stats import DEFAULT_CAMPUS_NAME, count_tenant_entities, seed_default_school


class SessionHandle:
    """Fake handle whose session() yields the given mock session."""

    def __init__(self, session) -> None:
        self._session = session

    @asynccontextmanager
    async def session(self):
        yield self._session


def _session(first_row=None):
    session = MagicMock()
    result = MagicMock()
    result.first.return_value = first_row
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_seed_creates_school_with_main_campus():
    session = _session()

    created = await seed_default_school(SessionHandle(session), "Colegio San José")

    assert created is True
    school = session.add.call_args.args[0]
    assert isinstance(school, School)
    assert school.name == "Colegio San José"
    assert [(c.name, c.is_main) for c in school.campuses] == [(DEFAULT_CAMPUS_NAME, True)]
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_seed_skips_when_school_exists():
    session = _session(first_row=("existing-id",))

    created = await seed_default_school(SessionHandle(session), "Colegio San José")

    assert created is False
    session.add.assert_not_called()
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_count_tenant_entities_reads_one_row():
    row = MagicMock()
    row._asdict.return_value = {
        "students": 120,
        "parents": 180,
        "teachers": 14,
        "news": 9,
        "events": 3,
        "messages": 40,
        "exit_permissions": 2,
        "reports": 5,
    }
    session = MagicMock()
    result = MagicMock()
    result.one.return_value = row
    session.execute = AsyncMock(return_value=result)

    stats = await count_tenant_entities(SessionHandle(session))

    assert stats.students == 120
    assert stats.exit_permissions == 2
    session.execute.assert_awaited_once()
