"""Alembic environment configuration.

Reads the database URL from groupwork.config and registers all models
so autogenerate can detect schema changes.
"""
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

# Allow running from backend/ without installing the package
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from groupwork.config import settings
from groupwork.database import Base

# Import all models so they register with Base.metadata
from groupwork.models.user import User  # noqa: F401
from groupwork.models.group import Group  # noqa: F401
from groupwork.models.assignment import Assignment  # noqa: F401
from groupwork.models.submission import Submission  # noqa: F401
from groupwork.models.message import GroupMessage  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


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
