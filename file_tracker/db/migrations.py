"""
Schema versioning for the File Tracker store.

The revision lives in ``alembic_version``. Stores written by releases that
predate version tracking have tables but no version row; they are stamped at
``base`` and walked forward through every revision, each of which checks the
catalog before it changes anything.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from alembic.config import Config
from alembic import command
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "alembic"
VERSION_TABLE = "alembic_version"


@dataclass
class MigrationReport:
    """Outcome of ensure_database_ready()."""
    fresh: bool = False
    revision: Optional[str] = None
    applied: List[str] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None


class MigrationManager:
    """
    Bring a store to the head revision.

    - empty store: ``create_all`` then stamp head
    - untracked store (tables, no version table): stamp base, then upgrade
    - tracked store: upgrade whatever is pending
    """

    def __init__(self, engine: Engine, migrations_dir: Optional[Path] = None):
        self.engine = engine
        self.migrations_dir = migrations_dir or MIGRATIONS_DIR

        cfg = Config()
        cfg.set_main_option("script_location", str(self.migrations_dir))
        cfg.set_main_option("sqlalchemy.url", str(engine.url))
        cfg.attributes["configure_logger"] = False
        self.alembic_cfg = cfg

    def _table_names(self) -> List[str]:
        return inspect(self.engine).get_table_names()

    def is_fresh_database(self) -> bool:
        """True when the store holds no tables at all."""
        tables = self._table_names()
        if tables:
            logger.debug(f"Store has {len(tables)} tables: {', '.join(sorted(tables))}")
            return False
        logger.info("Empty store, schema will be created from the models")
        return True

    def has_alembic_version_table(self) -> bool:
        return VERSION_TABLE in self._table_names()

    def get_current_revision(self) -> Optional[str]:
        """Revision recorded in the store, None when untracked or at base."""
        with self.engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()

    def get_head_revision(self) -> str:
        return ScriptDirectory.from_config(self.alembic_cfg).get_current_head()

    def pending_revisions(self) -> List[str]:
        """
        Revisions between the recorded one and head, oldest first.
        """
        current = self.get_current_revision()
        newest_first = []
        for script in ScriptDirectory.from_config(self.alembic_cfg).walk_revisions():
            if script.revision == current:
                break
            newest_first.append(script.revision)
        return list(reversed(newest_first))

    def _run(self, fn, *args):
        """Invoke an alembic command inside one transaction on our engine."""
        with self.engine.begin() as connection:
            self.alembic_cfg.attributes["connection"] = connection
            try:
                fn(self.alembic_cfg, *args)
            finally:
                self.alembic_cfg.attributes.pop("connection", None)

    def initialize_fresh_database(self):
        from file_tracker.db.database import Base
        import file_tracker.models  # noqa: F401 - registers tables with Base

        Base.metadata.create_all(self.engine)
        self._run(command.stamp, "head")
        logger.info(f"Created schema at {self.get_head_revision()}")

    def apply_migrations(self) -> List[str]:
        """
        Upgrade to head.

        Returns:
            Revisions applied, oldest first
        """
        pending = self.pending_revisions()
        if not pending:
            logger.info("Schema is current")
            return []

        logger.info(f"Upgrading schema: {' -> '.join(pending)}")
        self._run(command.upgrade, "head")
        return pending

    def ensure_database_ready(self) -> MigrationReport:
        """
        Called once at startup.

        A failed upgrade is logged and reported with ``degraded=True`` instead
        of raised; the store keeps serving with the schema it already has.
        """
        report = MigrationReport()

        try:
            if self.is_fresh_database():
                report.fresh = True
                self.initialize_fresh_database()
            else:
                if not self.has_alembic_version_table():
                    logger.info("Store predates version tracking, stamping base")
                    self._run(command.stamp, "base")
                report.applied = self.apply_migrations()
        except Exception as e:
            logger.error(f"Schema upgrade failed, running on the existing schema: {e}", exc_info=True)
            report.degraded = True
            report.error = str(e)

        report.revision = self.get_current_revision()
        return report
