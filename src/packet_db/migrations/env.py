"""Alembic environment for the generation job tables.

Migrations run synchronously over libpq, so the URL comes from
``DatabaseSettings.sync_url`` rather than the asyncpg runtime URL.
"""

import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from packet_db.config import DatabaseSettings
from packet_db.models import Base  # registers generation_jobs and rendered_packets

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

_db = DatabaseSettings.from_env()
config.set_main_option("sqlalchemy.url", _db.sync_url)
target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    # Detect column type changes (e.g. widening String(32)) on autogenerate
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    """Write the migration SQL to stdout."""
    _configure(
        url=_db.sync_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    logger.info("Migrating %s", _db.redacted)
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
