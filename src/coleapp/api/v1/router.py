"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.coleapp.api.v1 import health, school, tenants

router = APIRouter()

router.include_router(health.router)
router.include_router(tenants.router)
router.include_router(school.router)
