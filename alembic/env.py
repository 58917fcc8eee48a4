"""Alembic environment configuration."""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context
from placement_api.core.config import settings
from placement_api.core.database import Base

# Import all models to ensure they are registered
from placement_api.modules.applications import models as applications_models  # noqa: F401
from placement_api.modules.notifications import models as notifications_models  # noqa: F401
from placement_api.modules.opportunities import models as opportunities_models  # noqa: F401
from placement_api.modules.payments import models as payments_models  # noqa: F401

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Target metadata
target_metadata = Base.metadata


def _sync_database_url(database_url: str) -> str:
    """Convert the asyncpg URL to a psycopg2 URL for synchronous migrations."""
    if database_url.startswith("postgresql+asyncpg://"):
        database_url = database_url.replace("postgresql+asyncpg://", "postgresql://")
        # asyncpg uses 'ssl=...', psycopg2 uses 'sslmode=...'
        for separator in ("?", "&"):
            database_url = database_url.replace(f"{separator}ssl=false", f"{separator}sslmode=disable")
            database_url = database_url.replace(f"{separator}ssl=true", f"{separator}sslmode=require")
            database_url = database_url.replace(
                f"{separator}ssl=require", f"{separator}sslmode=require"
            )
    return database_url


config.set_main_option("sqlalchemy.url", _sync_database_url(settings.database_url))


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
