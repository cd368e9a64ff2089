"""Initial shared schema: tenants directory table.

Revision ID: 001_initial_shared
Revises:
Create Date: 2026-10-19

Uses schema="shared" placeholder, remapped by env.py to SHARED_SCHEMA.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_shared"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("shared",)
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subdomain", sa.String(56), nullable=False),
        sa.Column("schema_name", sa.String(63), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "provisioning_status",
            sa.String(20),
            server_default=sa.text("'provisioning'"),
            nullable=False,
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(500), nullable=True),
        sa.Column("primary_color", sa.String(20), nullable=True),
        sa.Column("secondary_color", sa.String(20), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("website", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("subdomain", name="uq_tenants_subdomain"),
        sa.UniqueConstraint("schema_name", name="uq_tenants_schema_name"),
        schema="shared",
    )
    op.create_index(
        "ix_tenants_active_created",
        "tenants",
        ["is_active", "created_at"],
        schema="shared",
    )


def downgrade() -> None:
    op.drop_index("ix_tenants_active_created", table_name="tenants", schema="shared")
    op.drop_table("tenants", schema="shared")
