"""Alembic environment for the registry schema."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from barrim_registry.config import get_database_url
from barrim_registry.db import models  # noqa: F401  register tables
from barrim_registry.db.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# BARRIM_DATABASE_URL wins over alembic.ini
config.set_main_option("sqlalchemy.url", get_database_url())

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # Batch mode for SQLite compatibility
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
