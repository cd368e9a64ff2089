"""Tenant template schema: canonical copy of every tenant table.

Revision ID: 002_tenant_template
Revises:
Create Date: 2026-10-19

Uses schema="tenant" placeholder, remapped by env.py to TEMPLATE_SCHEMA.
Tables are generated from models.tenant so the template and the ORM can
never drift; tenant schemas are then copied from it table by table.
"""

from typing import Sequence, Union

from alembic import op

import src.coleapp.models.tenant  # noqa: F401
from src.coleapp.core.database import TenantBase

# revision identifiers, used by Alembic.
revision: str = "002_tenant_template"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("template",)
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    TenantBase.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    TenantBase.metadata.drop_all(bind=op.get_bind(), checkfirst=True)
