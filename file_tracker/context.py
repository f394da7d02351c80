"""Service context: the store, the blob store and the services built on them."""

import logging
from dataclasses import dataclass
from typing import Optional

from file_tracker.config import SystemConfig
from file_tracker.db import Database
from file_tracker.db.migrations import MigrationReport
from file_tracker.services import BackupService, BlobStore, RecordService, SnapshotService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Everything a request handler needs, owned by the process entry point."""

    config: SystemConfig
    database: Database
    blob_store: BlobStore
    records: RecordService
    snapshots: SnapshotService
    backups: BackupService
    migration_report: Optional[MigrationReport] = None

    def close(self):
        self.database.dispose()
        logger.info("Service context closed")


async def build_context(config: SystemConfig) -> ServiceContext:
    """
    Open (creating or migrating) the store and blob directory for ``config``.

    Returns:
        Ready-to-use ServiceContext
    """
    paths = config.paths
    paths.temp_path.mkdir(parents=True, exist_ok=True)

    database = Database(paths.database_path, echo=False)
    report = database.initialize()
    if report.degraded:
        logger.warning(f"Store running on an incomplete schema: {report.error}")

    blob_store = BlobStore(
        storage_path=paths.storage_path,
        temp_path=paths.temp_path,
        compression_level=config.backup.compression_level,
        snapshot_entry_name=config.backup.snapshot_entry_name,
        files_prefix=config.backup.files_prefix
    )
    await blob_store.initialize()

    snapshots = SnapshotService(database)
    context = ServiceContext(
        config=config,
        database=database,
        blob_store=blob_store,
        records=RecordService(database, blob_store, config.pagination),
        snapshots=snapshots,
        backups=BackupService(snapshots, blob_store, paths.temp_path),
        migration_report=report
    )
    logger.info(f"Service context ready (data: {paths.data})")
    return context
