"""
alembic.env

Alembic migration environment configuration.

Responsibilities:
- Provide metadata discovery for autogeneration.
- Configure offline/online migration execution.

Notes:
- This module is executed by Alembic, not imported by the FastAPI runtime.
- Migrations run synchronously; async driver suffixes are stripped from the URL.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from catequesis_api.db import models  # noqa: F401  # ensure models are registered on Base.metadata
from catequesis_api.db.base import Base
from catequesis_api.settings import Settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_database_url() -> str:
    url = os.environ.get("CATEQUESIS_DATABASE_URL") or Settings().database_url
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg")


def run_migrations_offline() -> None:
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = _get_database_url()
    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # SQLite cannot ALTER most constraints in place; batch mode recreates tables.
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
