"""
Schema Migrations

Versioned Alembic revisions under ``storecache/database/migrations``. Each
revision is applied once and recorded in the ``alembic_version`` table, so
running this at every startup is a no-op once the store is at head.
"""

from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Connection

logger = structlog.get_logger(__name__)

MIGRATIONS_PATH = Path(__file__).parent / "migrations"


def alembic_config(connection: Connection = None) -> Config:
    """Alembic config pointing at the packaged migrations."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    if connection is not None:
        # env.py reuses a caller-supplied connection when present
        config.attributes["connection"] = connection
    return config


def current_revision(connection: Connection):
    """Revision recorded in the store, or None for an empty database."""
    return MigrationContext.configure(connection).get_current_revision()


def apply_migrations(connection: Connection, revision: str = "head") -> None:
    """
    Upgrade the schema on an open (sync) connection.

    Use from async code with ``await conn.run_sync(apply_migrations)``.
    """
    before = current_revision(connection)
    command.upgrade(alembic_config(connection), revision)
    after = current_revision(connection)

    if before != after:
        logger.info("Schema migrated", from_revision=before, to_revision=after)
    else:
        logger.debug("Schema up to date", revision=after)
