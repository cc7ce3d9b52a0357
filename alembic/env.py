"""Alembic environment for the roundplay schema.

The database comes from :func:`roundplay.config.load_settings` (``DB_URL``
in the environment or ``.env``) unless ``alembic.ini`` or ``-x db_url=...``
names one explicitly.
"""

from __future__ import annotations

import logging
from logging.config import fileConfig

from alembic import context

from roundplay.config import load_settings
from roundplay.db.engine import make_engine
from roundplay.models import Base  # noqa: F401 - import populates metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def migration_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    if override:
        return override
    return config.get_main_option("sqlalchemy.url") or load_settings().database_url


DATABASE_URL = migration_url()
# ConfigParser interpolation treats "%" as special.
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Emit the migration SQL for ``DATABASE_URL`` without connecting."""

    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(database_url=DATABASE_URL)
    logger.info(f"Migrating {engine.url.render_as_string(hide_password=True)}")
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                # SQLite cannot ALTER most columns in place.
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
