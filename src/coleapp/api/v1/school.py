"""Tenant-scoped school endpoint.

Requires X-Tenant-ID. The session comes from the gateway handle of the
resolved tenant, so the query can only ever see that tenant's schema.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.coleapp.api.deps import get_db
from src.coleapp.models.tenant import School
from src.coleapp.schemas.tenant import CampusRead, SchoolRead

router = APIRouter(prefix="/api/v1/school", tags=["school"])


@router.get("", response_model=SchoolRead)
async def get_school(db: AsyncSession = Depends(get_db)):
    """The current tenant's school with its campuses, main campus first."""
    result = await db.execute(select(School).options(selectinload(School.campuses)).limit(1))
    school = result.scalar_one_or_none()
    if school is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="School not configured")

    campuses = sorted(school.campuses, key=lambda c: (not c.is_main, c.name))
    return SchoolRead(
        id=str(school.id),
        name=school.name,
        campuses=[
            CampusRead(id=str(c.id), name=c.name, address=c.address, is_main=c.is_main)
            for c in campuses
        ],
    )
