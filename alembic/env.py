"""Alembic environment for the control plane and the tenant template.

Supports two migration modes via -x argument:
  alembic -x schema=shared upgrade shared@head      -- control-plane schema
  alembic -x schema=template upgrade template@head  -- canonical tenant tables

Tenant schemas are never migrated here: they are copies of the template,
brought up to date by re-running provisioning (manage_tenants.py sync).

Each schema gets its own alembic_version table so migrations
are tracked independently.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool, text

from src.coleapp.config import get_settings
import src.coleapp.models.shared  # noqa: F401  (registers tables on the metadata)
import src.coleapp.models.tenant  # noqa: F401
from src.coleapp.core.database import SharedBase, TenantBase

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()

# Get schema from -x args
cmd_kwargs = context.get_x_argument(as_dictionary=True)
target = cmd_kwargs.get("schema", "shared")

if target == "shared":
    target_schema = settings.SHARED_SCHEMA
    target_metadata = SharedBase.metadata
    schema_translate_map = {"shared": target_schema}
elif target == "template":
    target_schema = settings.TEMPLATE_SCHEMA
    target_metadata = TenantBase.metadata
    schema_translate_map = {"tenant": target_schema}
else:
    raise ValueError(f"Unknown migration target {target!r}; use -x schema=shared or -x schema=template")


def _sync_url() -> str:
    return settings.DATABASE_URL.replace("+asyncpg", "")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table_schema=target_schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = create_engine(_sync_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # Ensure the target schema exists before Alembic tries to create
        # its version table there
        connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{target_schema}"'))
        connection.commit()

        connection = connection.execution_options(schema_translate_map=schema_translate_map)
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table_schema=target_schema,
            include_schemas=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
