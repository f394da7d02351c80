"""Database configuration and session management."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _install_sqlite_hooks(engine: Engine) -> None:
    """
    Enable foreign keys and take over transaction control from pysqlite.
    
    pysqlite's implicit BEGIN handling breaks SAVEPOINT, which the snapshot
    importer relies on for per-row isolation.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    
    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """
    Owns the engine and session factory for one SQLite store file.
    
    Constructed by the process entry point and handed to services; there is
    no module-level engine.
    """
    
    def __init__(self, database_path: Path, echo: bool = False):
        self.database_path = Path(database_path)
        self.url = f"sqlite:///{self.database_path}"
        self.engine = create_engine(
            self.url,
            connect_args={
                "check_same_thread": False,  # Blob I/O hops between worker threads
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS
            },
            echo=echo
        )
        _install_sqlite_hooks(self.engine)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.migration_report = None
        self._master_link_enabled = None

    def initialize(self):
        """
        Create or upgrade the schema.
        
        Safe to call on an already-initialized store.
        
        Returns:
            MigrationReport describing what happened
        """
        from file_tracker.db.migrations import MigrationManager
        
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        
        manager = MigrationManager(self.engine)
        self.migration_report = manager.ensure_database_ready()
        self._master_link_enabled = self.has_column("files", "master_file_id")

        logger.info(
            f"Database initialized at: {self.database_path} "
            f"(revision: {self.migration_report.revision}, degraded: {self.migration_report.degraded})"
        )
        return self.migration_report
    
    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that is always closed afterwards."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()
    
    def has_column(self, table: str, column: str) -> bool:
        """Check the catalog for a column."""
        inspector = inspect(self.engine)
        if table not in inspector.get_table_names():
            return False
        return any(col["name"] == column for col in inspector.get_columns(table))
    
    @property
    def master_link_enabled(self) -> bool:
        """False when the files.master_file_id migration could not be applied."""
        if self._master_link_enabled is None:
            self._master_link_enabled = self.has_column("files", "master_file_id")
        return self._master_link_enabled
    
    def dispose(self):
        """Release pooled connections."""
        self.engine.dispose()
        logger.debug(f"Database engine disposed: {self.database_path}")
