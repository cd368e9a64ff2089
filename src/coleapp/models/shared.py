"""Shared schema models -- tables that exist once in the control plane.

The Tenant model lives here because it's used for tenant resolution and
is the only data not partitioned per tenant schema.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from src.coleapp.core.database import SharedBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tenant(SharedBase):
    """Registered school in the platform.

    Each tenant owns exactly one schema (schema_name). subdomain and
    schema_name are unique at the storage layer; concurrent inserts of the
    same subdomain have exactly one winner.
    """

    __tablename__ = "tenants"
    __table_args__ = (
        UniqueConstraint("subdomain", name="uq_tenants_subdomain"),
        UniqueConstraint("schema_name", name="uq_tenants_schema_name"),
        {"schema": "shared"},
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subdomain: Mapped[str] = mapped_column(String(56), nullable=False)
    schema_name: Mapped[str] = mapped_column(String(63), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    provisioning_status: Mapped[str] = mapped_column(
        String(20), default="provisioning", server_default=text("'provisioning'")
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Branding / contact
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    secondary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )
