"""Alembic environment for the upilink cache schema."""

from __future__ import annotations

from alembic import context
from sqlalchemy import create_engine, pool

from upilink.adapters.sqlalchemy.mappings import metadata
from upilink.config import get_database_config

config = context.config

# sqlite cannot ALTER most columns in place; batch mode rebuilds the table
_OPTIONS = {"target_metadata": metadata, "render_as_batch": True, "compare_type": True}


def _url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _migrate(**configure: object) -> None:
    context.configure(**configure, **_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _migrate(url=_url(), literal_binds=True)
elif (shared := config.attributes.get("connection")) is not None:
    _migrate(connection=shared)
else:
    engine = create_engine(_url(), poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            _migrate(connection=connection)
    finally:
        engine.dispose()
