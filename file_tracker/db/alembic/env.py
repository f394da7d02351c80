"""Alembic environment for the File Tracker store.

MigrationManager runs every command with a live connection placed in
``config.attributes["connection"]``, so revisions see the application's
connection hooks (foreign keys on, explicit BEGIN). Running the ``alembic``
CLI directly falls back to an engine built from ``sqlalchemy.url``.
"""

from sqlalchemy import engine_from_config, pool

from alembic import context

from file_tracker.db.database import Base
import file_tracker.models.records  # noqa: F401 - registers the tables

config = context.config
target_metadata = Base.metadata


def _migrate(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,  # SQLite cannot ALTER most constraints in place
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit migration SQL for ``sqlalchemy.url`` without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is not None:
        _migrate(connection)
        return

    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        _migrate(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
