"""Per-tenant entity counts and default seed data.

Both operate purely through a tenant ConnectionHandle; they never see the
schema name.
"""

from __future__ import annotations

from sqlalchemy import func, select

from src.coleapp.core.database import ConnectionHandle
from src.coleapp.models.tenant import (
    Campus,
    Event,
    ExitPermission,
    Message,
    News,
    Parent,
    Report,
    School,
    Student,
    Teacher,
)
from src.coleapp.schemas.tenant import TenantStats

DEFAULT_CAMPUS_NAME = "Sede Principal"

_COUNTED = {
    "students": Student,
    "parents": Parent,
    "teachers": Teacher,
    "news": News,
    "events": Event,
    "messages": Message,
    "exit_permissions": ExitPermission,
    "reports": Report,
}


async def count_tenant_entities(handle: ConnectionHandle) -> TenantStats:
    """Count the main entities of one tenant in a single round-trip."""
    columns = [
        select(func.count()).select_from(model).scalar_subquery().label(name)
        for name, model in _COUNTED.items()
    ]
    async with handle.session() as session:
        row = (await session.execute(select(*columns))).one()
    return TenantStats(**row._asdict())


async def seed_default_school(handle: ConnectionHandle, school_name: str) -> bool:
    """Insert the tenant's School with its main Campus.

    Skips when a school already exists so a retried onboarding never
    duplicates seed rows. Returns True if rows were inserted.
    """
    async with handle.session() as session:
        existing = await session.execute(select(School.id).limit(1))
        if existing.first() is not None:
            return False

        school = School(name=school_name)
        school.campuses.append(Campus(name=DEFAULT_CAMPUS_NAME, is_main=True))
        session.add(school)
        await session.commit()
    return True
