"""Alembic environment for the order workflow database.

The URL in alembic.ini is the fallback. When ``CONCIERGE_DB_PATH`` is set
the migration targets the same SQLite file the workers use, via AppConfig.

Batch mode (render_as_batch) rebuilds SQLite tables on ALTER, which drops
their triggers. A migration that alters order_workflow_log or
order_notifications must call create_immutability_triggers() afterwards.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import concierge.models  # noqa: F401  (registers every table on Base.metadata)
from concierge.config import AppConfig
from concierge.models.base import Base, register_engine_events

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _database_url() -> str:
    if os.environ.get("CONCIERGE_DB_PATH"):
        return f"sqlite:///{AppConfig().db_path}"
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database URL: set sqlalchemy.url or CONCIERGE_DB_PATH")
    return url


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    register_engine_events(engine)

    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
