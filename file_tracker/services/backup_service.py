"""
Backup/restore orchestration.

Composes the snapshot service and the blob store into the user-facing
export, import, backup and restore operations. Every operation returns a
result envelope ``{"success": bool, "message": str, ...}``; failures are
logged and reported, never raised.
"""

import asyncio
import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from file_tracker.services.blob_storage import BlobStore
from file_tracker.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


def default_export_name(today: Optional[date] = None) -> str:
    """Suggested file name for a data-only export."""
    return f"filetracker-backup-{(today or date.today()).isoformat()}.json"


def default_backup_name(today: Optional[date] = None) -> str:
    """Suggested file name for a full backup archive."""
    return f"filetracker-full-backup-{(today or date.today()).isoformat()}.zip"


def _failure(message: str) -> Dict[str, Any]:
    return {"success": False, "message": message}


class BackupService:
    """Service for exporting, importing, backing up and restoring a store."""

    def __init__(self, snapshot_service: SnapshotService, blob_store: BlobStore, temp_path: Path):
        """
        Initialize backup service.

        Args:
            snapshot_service: Snapshot export/import over the record store
            blob_store: Attachment store
            temp_path: Directory for intermediate snapshot files
        """
        self.snapshot_service = snapshot_service
        self.blob_store = blob_store
        self.temp_path = Path(temp_path)

    async def export_data(self, path: Optional[Path]) -> Dict[str, Any]:
        """Write a metadata-only snapshot file."""
        if not path:
            return _failure("Export cancelled")
        try:
            await asyncio.to_thread(self.snapshot_service.write_snapshot_file, Path(path))
            logger.info(f"Data exported to: {path}")
            return {"success": True, "filePath": str(path), "message": "Data exported successfully"}
        except Exception as e:
            logger.error(f"Export error: {e}", exc_info=True)
            return _failure(str(e))

    async def import_data(self, path: Optional[Path], overwrite: bool = False) -> Dict[str, Any]:
        """Merge a snapshot file into the store."""
        if not path:
            return _failure("Import cancelled")
        try:
            def _import():
                snapshot = self.snapshot_service.read_snapshot_file(Path(path))
                return self.snapshot_service.import_snapshot(snapshot, overwrite=overwrite)

            results = await asyncio.to_thread(_import)
            logger.info(f"Data imported from: {path}")
            return {
                "success": True,
                "results": results.model_dump(),
                "message": "Data imported successfully",
            }
        except Exception as e:
            logger.error(f"Import error: {e}", exc_info=True)
            return _failure(str(e))

    async def create_full_backup(self, path: Optional[Path]) -> Dict[str, Any]:
        """Pack every blob plus a fresh snapshot into one archive."""
        if not path:
            return _failure("Backup cancelled")

        snapshot_file = self.temp_path / f"database-export-{uuid.uuid4().hex}.json"
        try:
            await asyncio.to_thread(self.snapshot_service.write_snapshot_file, snapshot_file)
            total_bytes = await self.blob_store.pack_archive_with_snapshot(Path(path), snapshot_file)
            logger.info(f"Full backup created: {path} ({total_bytes} bytes)")
            return {
                "success": True,
                "filePath": str(path),
                "totalBytes": total_bytes,
                "message": "Full backup created successfully",
            }
        except Exception as e:
            logger.error(f"Backup error: {e}", exc_info=True)
            return _failure(str(e))
        finally:
            try:
                snapshot_file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temporary snapshot {snapshot_file}: {e}")

    async def restore_full_backup(self, path: Optional[Path], overwrite: bool = False) -> Dict[str, Any]:
        """Restore a combined or files-only archive, including its snapshot if present."""
        if not path:
            return _failure("Restore cancelled")
        try:
            report = await self.blob_store.unpack_and_merge(
                Path(path), overwrite=overwrite, importer=self.snapshot_service
            )
            return {
                "success": True,
                "results": {
                    "files": report.to_dict(),
                    "databaseRestored": report.database_restored,
                    "databaseFound": report.database_found,
                },
                "message": "Complete backup restored successfully",
            }
        except Exception as e:
            logger.error(f"Restore error: {e}", exc_info=True)
            return _failure(str(e))

    async def export_files(
        self,
        path: Optional[Path],
        filenames: Optional[Iterable[str]] = None
    ) -> Dict[str, Any]:
        """Archive blobs only (all, or the named subset)."""
        if not path:
            return _failure("Export cancelled")
        try:
            total_bytes = await self.blob_store.pack_archive(Path(path), filenames)
            return {
                "success": True,
                "filePath": str(path),
                "totalBytes": total_bytes,
                "message": "Files exported",
            }
        except Exception as e:
            logger.error(f"File export error: {e}", exc_info=True)
            return _failure(str(e))

    async def import_files(self, path: Optional[Path], overwrite: bool = False) -> Dict[str, Any]:
        """Restore blobs from an archive; an embedded snapshot is reported as skipped."""
        if not path:
            return _failure("Import cancelled")
        try:
            report = await self.blob_store.unpack_and_merge(Path(path), overwrite=overwrite)
            return {"success": True, "results": report.to_dict(), "message": "Files imported"}
        except Exception as e:
            logger.error(f"File import error: {e}", exc_info=True)
            return _failure(str(e))
