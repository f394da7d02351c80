"""
Record service: validated CRUD over the repositories, plus the operations
that have to keep the record store and the blob store in step (scan upload,
record delete, orphan sweep).
"""

import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from file_tracker.config.models import PaginationConfig
from file_tracker.db.database import Database
from file_tracker.errors import ConflictError, FileTrackerError, NotFoundError, ValidationError
from file_tracker.repositories import FileRecordRepository, MasterFileRepository, ScanRepository
from file_tracker.services.blob_storage import BlobStore

logger = logging.getLogger(__name__)

MIMETYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
}
DEFAULT_MIMETYPE = "application/octet-stream"


def guess_mimetype(filename: str) -> str:
    return MIMETYPES.get(Path(filename or "").suffix.lower(), DEFAULT_MIMETYPE)


class RecordService:
    """Entry point for everything the UI does with records and scans."""

    def __init__(
        self,
        database: Database,
        blob_store: BlobStore,
        pagination: Optional[PaginationConfig] = None
    ):
        self.database = database
        self.blob_store = blob_store
        self.pagination = pagination or PaginationConfig()

    def _files(self, db) -> FileRecordRepository:
        return FileRecordRepository(db, self.database.master_link_enabled, self.pagination)

    def _masters(self, db) -> MasterFileRepository:
        return MasterFileRepository(db, self.database.master_link_enabled, self.pagination)

    # ------------------------------------------------------------------
    # File records
    # ------------------------------------------------------------------

    def _clean_file_data(self, db, data: Dict[str, Any]) -> Dict[str, Any]:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required")

        cleaned = dict(data)
        cleaned["title"] = title

        master_file_id = data.get("master_file_id")
        if master_file_id in ("", 0):
            master_file_id = None
        if master_file_id is not None and self.database.master_link_enabled:
            try:
                master_file_id = int(master_file_id)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid master_file_id: {master_file_id!r}")
            if not self._masters(db).exists(master_file_id):
                raise ConflictError(f"Master file {master_file_id} does not exist")
        cleaned["master_file_id"] = master_file_id
        return cleaned

    def list_file_records(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        with self.database.session() as db:
            return self._files(db).list(params)

    def get_file_record(self, record_id: int) -> Dict[str, Any]:
        with self.database.session() as db:
            record = self._files(db).get(record_id)
        if record is None:
            raise NotFoundError("file record", record_id)
        return record

    def create_file_record(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: Empty title
            ConflictError: master_file_id names a missing master file
        """
        with self.database.session() as db:
            record = self._files(db).create(self._clean_file_data(db, data))
        logger.info(f"Created file record {record['id']}: {record['title']}")
        return record

    def update_file_record(self, record_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.database.session() as db:
            record = self._files(db).update(record_id, self._clean_file_data(db, data))
        if record is None:
            raise NotFoundError("file record", record_id)
        logger.info(f"Updated file record {record_id}")
        return record

    async def delete_file_record(self, record_id: int) -> Dict[str, Any]:
        """
        Delete a record, its scan rows and their blobs.

        Rows go first in one transaction (the store cascades to scans); blobs
        are removed afterwards. A blob that cannot be removed is logged and
        left for sweep_orphan_blobs().

        Returns:
            {"deletedId", "blobsDeleted", "blobErrors"}
        """
        with self.database.session() as db:
            keys = [scan["filepath"] for scan in ScanRepository(db).list_by_file(record_id)]
            if not self._files(db).delete(record_id):
                raise NotFoundError("file record", record_id)

        deleted = 0
        errors = 0
        for key in keys:
            try:
                if await self.blob_store.delete(key):
                    deleted += 1
            except FileTrackerError as e:
                errors += 1
                logger.error(f"Failed to delete blob {key} of file record {record_id}: {e}")

        logger.info(f"Deleted file record {record_id} ({deleted} blobs removed, {errors} failed)")
        return {"deletedId": record_id, "blobsDeleted": deleted, "blobErrors": errors}

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def list_scans(self, file_id: int) -> List[Dict[str, Any]]:
        with self.database.session() as db:
            return ScanRepository(db).list_by_file(file_id)

    def get_scan(self, scan_id: int) -> Dict[str, Any]:
        with self.database.session() as db:
            scan = ScanRepository(db).get(scan_id)
        if scan is None:
            raise NotFoundError("scan", scan_id)
        return scan

    async def add_scan(
        self,
        file_id: int,
        data: bytes,
        filename: str,
        mimetype: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Store an attachment and record it against a file record.

        The blob is removed again if the row cannot be written.
        """
        with self.database.session() as db:
            if not self._files(db).exists(file_id):
                raise NotFoundError("file record", file_id)

        key = await self.blob_store.save(data, filename)
        try:
            with self.database.session() as db:
                scan = ScanRepository(db).create(
                    file_id=file_id,
                    filename=filename,
                    filepath=key,
                    mimetype=mimetype or guess_mimetype(filename),
                    size=len(data)
                )
        except Exception:
            logger.error(f"Failed to record scan {filename} for file {file_id}, removing blob {key}")
            await self.blob_store.delete(key)
            raise

        logger.info(f"Added scan {scan['id']} ({filename}, {len(data)} bytes) to file {file_id}")
        return scan

    async def delete_scan(self, scan_id: int) -> Dict[str, Any]:
        scan = self.get_scan(scan_id)
        await self.blob_store.delete(scan["filepath"])
        with self.database.session() as db:
            ScanRepository(db).delete(scan_id)
        logger.info(f"Deleted scan {scan_id} ({scan['filepath']})")
        return {"deletedId": scan_id}

    async def get_scan_content(self, scan_id: int) -> Dict[str, Any]:
        """
        Returns:
            {"data": base64 bytes, "mimetype", "filename"}
        """
        scan = self.get_scan(scan_id)
        content = await self.blob_store.read(scan["filepath"])
        return {
            "data": base64.b64encode(content).decode("ascii"),
            "mimetype": scan["mimetype"],
            "filename": scan["filename"],
        }

    def get_scan_path(self, scan_id: int) -> Path:
        return self.blob_store.full_path(self.get_scan(scan_id)["filepath"])

    async def sweep_orphan_blobs(self) -> Dict[str, Any]:
        """
        Delete blobs that no scan row references.

        Returns:
            {"removed": [keys], "errors": [{"filename", "reason"}]}
        """
        with self.database.session() as db:
            referenced = set(ScanRepository(db).list_all_filepaths())

        removed = []
        errors = []
        for key in await self.blob_store.list_keys():
            if key in referenced:
                continue
            try:
                await self.blob_store.delete(key)
                removed.append(key)
            except FileTrackerError as e:
                logger.error(f"Failed to remove orphan blob {key}: {e}")
                errors.append({"filename": key, "reason": str(e)})

        logger.info(f"Orphan sweep removed {len(removed)} blob(s), {len(errors)} error(s)")
        return {"removed": removed, "errors": errors}

    # ------------------------------------------------------------------
    # Master files
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        return name

    def list_master_files(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        with self.database.session() as db:
            return self._masters(db).list(params)

    def list_all_master_files(self) -> List[Dict[str, Any]]:
        with self.database.session() as db:
            return self._masters(db).list_all()

    def get_master_file(self, master_file_id: int) -> Dict[str, Any]:
        with self.database.session() as db:
            master = self._masters(db).get(master_file_id)
        if master is None:
            raise NotFoundError("master file", master_file_id)
        return master

    def create_master_file(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        name = self._clean_name(name)
        with self.database.session() as db:
            master = self._masters(db).create(name, description)
        logger.info(f"Created master file {master['id']}: {name}")
        return master

    def update_master_file(
        self,
        master_file_id: int,
        name: str,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        name = self._clean_name(name)
        with self.database.session() as db:
            master = self._masters(db).update(master_file_id, name, description)
        if master is None:
            raise NotFoundError("master file", master_file_id)
        return master

    def delete_master_file(self, master_file_id: int) -> Dict[str, Any]:
        """Delete a master file; its file records become unassigned."""
        with self.database.session() as db:
            if not self._masters(db).delete(master_file_id):
                raise NotFoundError("master file", master_file_id)
        logger.info(f"Deleted master file {master_file_id}")
        return {"deletedId": master_file_id}
