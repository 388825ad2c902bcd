"""Alembic environment bound to the application's metadata."""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine, pool

from fichajes.config import Config
from fichajes.extensions import db
from fichajes import models as _models  # noqa: F401


target_metadata = db.metadata


def _database_url() -> str:
    return context.config.get_main_option("sqlalchemy.url") or Config.SQLALCHEMY_DATABASE_URI


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
