"""
Blob storage service for scan attachments.

Stores opaque attachment bytes in one flat directory, addressed by a generated
key, and packs/unpacks that directory into zip archives for backup and
restore. All filesystem work runs in worker threads.
"""

import asyncio
import json
import logging
import random
import shutil
import string
import time
import uuid
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from file_tracker.errors import FileTrackerError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.digits + string.ascii_lowercase
KEY_RANDOM_LENGTH = 11


class BlobStorageError(FileTrackerError):
    """Base exception for blob storage I/O failures."""
    pass


class BlobNotFoundError(NotFoundError):
    """Raised when a blob key has no stored bytes."""

    def __init__(self, key: str):
        super().__init__("blob", key, f"Blob not found: {key}")


class RestoreError(FileTrackerError):
    """Raised when an archive cannot be opened or extracted at all."""
    pass


class SnapshotImporter(Protocol):
    def import_snapshot(self, snapshot: Dict[str, Any], overwrite: bool = False) -> Any:
        ...


class RestoreEntry(BaseModel):
    """Outcome for one archive entry."""

    filename: str
    status: Literal["restored", "skipped", "error"]
    reason: Optional[str] = None


class RestoreReport(BaseModel):
    """Tally returned by unpack_and_merge()."""

    model_config = ConfigDict(populate_by_name=True)

    restored: int = 0
    skipped: int = 0
    errors: int = 0
    files: List[RestoreEntry] = Field(default_factory=list)
    database_restored: bool = Field(default=False, alias="databaseRestored")
    database_found: bool = Field(default=False, alias="databaseFound")
    database_results: Optional[Dict[str, Any]] = Field(default=None, alias="databaseResults")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(KEY_ALPHABET[remainder])
    return "".join(reversed(digits))


def validate_key(key: str) -> str:
    """
    Reject anything that is not a plain file name inside the store.

    Raises:
        ValidationError: For empty names, path separators, or dot entries
    """
    if not key or not isinstance(key, str):
        raise ValidationError("Blob key must be a non-empty string")
    if "/" in key or "\\" in key or "\x00" in key or key in (".", ".."):
        raise ValidationError(f"Invalid blob key: {key!r}")
    return key


def _iso_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


class BlobStore:
    """
    Flat directory of attachment blobs.

    Keys are ``<ms timestamp base36><11 random base36 chars><extension>`` and
    are checked against the directory before use, so two saves never share
    a key.
    """

    def __init__(
        self,
        storage_path: Path,
        temp_path: Path,
        compression_level: int = 9,
        snapshot_entry_name: str = "database.json",
        files_prefix: str = "files"
    ):
        """
        Initialize blob store.

        Args:
            storage_path: Directory holding the blobs
            temp_path: Root for scratch directories used during restore
            compression_level: zlib level for packed archives (0-9)
            snapshot_entry_name: Archive entry name of an embedded snapshot
            files_prefix: Archive directory holding blobs in combined backups
        """
        self.storage_path = Path(storage_path)
        self.temp_path = Path(temp_path)
        self.compression_level = compression_level
        self.snapshot_entry_name = snapshot_entry_name
        self.files_prefix = files_prefix

    async def initialize(self) -> None:
        await asyncio.to_thread(self.storage_path.mkdir, parents=True, exist_ok=True)
        logger.info(f"Blob storage initialized: {self.storage_path}")

    def generate_key(self, original_name: str) -> str:
        extension = Path(original_name or "").suffix
        if any(ch in extension for ch in "\\\x00"):
            logger.debug(f"Dropping unusable extension {extension!r} from {original_name!r}")
            extension = ""
        while True:
            stamp = to_base36(int(time.time() * 1000))
            noise = "".join(random.choices(KEY_ALPHABET, k=KEY_RANDOM_LENGTH))
            key = f"{stamp}{noise}{extension}"
            if not (self.storage_path / key).exists():
                return validate_key(key)
            logger.debug(f"Blob key collision, regenerating: {key}")

    def full_path(self, key: str) -> Path:
        """Absolute path of a blob (it may not exist)."""
        return (self.storage_path / validate_key(key)).resolve()

    async def save(self, data: bytes, original_name: str) -> str:
        """
        Store bytes under a fresh key.

        Args:
            data: Attachment bytes
            original_name: Name the bytes were uploaded under; its extension is kept

        Returns:
            The generated key

        Raises:
            BlobStorageError: If the bytes cannot be written
        """
        def _write() -> str:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            key = self.generate_key(original_name)
            # never overwrite an existing blob
            with open(self.storage_path / key, "xb") as f:
                f.write(data)
            return key

        try:
            key = await asyncio.to_thread(_write)
        except OSError as e:
            logger.error(f"Failed to save blob for {original_name}: {e}")
            raise BlobStorageError(f"Failed to save file: {e}") from e

        logger.debug(f"Saved blob {key} ({len(data)} bytes)")
        return key

    async def read(self, key: str) -> bytes:
        """
        Raises:
            BlobNotFoundError: If no blob has this key
            BlobStorageError: On other read failures
        """
        path = self.storage_path / validate_key(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise BlobNotFoundError(key)
        except OSError as e:
            raise BlobStorageError(f"Failed to read file {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        """
        Delete a blob.

        Returns:
            True if removed, False if it was already absent
        """
        path = self.storage_path / validate_key(key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.debug(f"Blob already absent: {key}")
            return False
        except OSError as e:
            raise BlobStorageError(f"Failed to delete file {key}: {e}") from e
        logger.debug(f"Deleted blob {key}")
        return True

    async def exists(self, key: str) -> bool:
        path = self.storage_path / validate_key(key)
        return await asyncio.to_thread(path.is_file)

    def _list_keys(self) -> List[str]:
        if not self.storage_path.exists():
            return []
        return sorted(p.name for p in self.storage_path.iterdir() if p.is_file())

    async def list_keys(self) -> List[str]:
        return await asyncio.to_thread(self._list_keys)

    async def stats(self) -> Dict[str, Any]:
        """
        Summarize the store.

        Returns:
            {"totalFiles", "totalSize", "files": [{filename, size, created, modified}]}
        """
        def _collect() -> Dict[str, Any]:
            files = []
            total_size = 0
            for key in self._list_keys():
                try:
                    st = (self.storage_path / key).stat()
                except OSError as e:
                    logger.warning(f"Error reading stats for {key}: {e}")
                    continue
                total_size += st.st_size
                files.append({
                    "filename": key,
                    "size": st.st_size,
                    "created": _iso_timestamp(st.st_ctime),
                    "modified": _iso_timestamp(st.st_mtime),
                })
            return {"totalFiles": len(files), "totalSize": total_size, "files": files}

        try:
            return await asyncio.to_thread(_collect)
        except OSError as e:
            raise BlobStorageError(f"Failed to get storage stats: {e}") from e

    def _open_archive(self, destination: Path) -> zipfile.ZipFile:
        destination.parent.mkdir(parents=True, exist_ok=True)
        return zipfile.ZipFile(
            destination, "w", zipfile.ZIP_DEFLATED, compresslevel=self.compression_level
        )

    def _selected_keys(self, selection: Optional[Iterable[str]]) -> List[str]:
        if selection is None:
            return self._list_keys()
        keys = []
        for name in selection:
            validate_key(name)
            if (self.storage_path / name).is_file():
                keys.append(name)
            else:
                logger.warning(f"File not found for export, skipping: {name}")
        return keys

    async def pack_archive(self, destination: Path, selection: Optional[Iterable[str]] = None) -> int:
        """
        Zip blobs at the archive root.

        Args:
            destination: Archive path to write
            selection: Keys to include; all blobs when None. Missing keys are skipped.

        Returns:
            Size of the written archive in bytes
        """
        destination = Path(destination)
        selection = list(selection) if selection is not None else None

        def _pack() -> int:
            keys = self._selected_keys(selection)
            with self._open_archive(destination) as zipf:
                for key in keys:
                    zipf.write(self.storage_path / key, key)
            logger.info(f"Packed {len(keys)} blob(s) into {destination}")
            return destination.stat().st_size

        try:
            return await asyncio.to_thread(_pack)
        except OSError as e:
            raise BlobStorageError(f"Failed to create archive {destination}: {e}") from e

    async def pack_archive_with_snapshot(self, destination: Path, snapshot_file: Path) -> int:
        """
        Zip every blob under ``files/`` plus the snapshot under its fixed entry name.

        Returns:
            Size of the written archive in bytes
        """
        destination = Path(destination)
        snapshot_file = Path(snapshot_file)

        def _pack() -> int:
            keys = self._list_keys()
            with self._open_archive(destination) as zipf:
                for key in keys:
                    zipf.write(self.storage_path / key, f"{self.files_prefix}/{key}")
                zipf.write(snapshot_file, self.snapshot_entry_name)
            logger.info(f"Packed full backup with {len(keys)} blob(s) into {destination}")
            return destination.stat().st_size

        try:
            return await asyncio.to_thread(_pack)
        except OSError as e:
            raise BlobStorageError(f"Failed to create backup {destination}: {e}") from e

    async def unpack_and_merge(
        self,
        archive_path: Path,
        overwrite: bool = False,
        importer: Optional[SnapshotImporter] = None
    ) -> RestoreReport:
        """
        Restore an archive into the live store.

        Combined archives (snapshot entry plus ``files/``) hand the snapshot to
        ``importer`` when one is given; flat archives restore blobs only.

        Args:
            archive_path: Zip archive to restore
            overwrite: Replace existing blobs (and conflicting rows) instead of skipping
            importer: Object with ``import_snapshot(snapshot, overwrite=...)``

        Returns:
            RestoreReport

        Raises:
            RestoreError: If the archive is missing or not a readable zip
        """
        return await asyncio.to_thread(self._unpack_and_merge, Path(archive_path), overwrite, importer)

    def _extract_archive(self, archive_path: Path, scratch_dir: Path) -> None:
        if not archive_path.is_file():
            raise RestoreError(f"Backup file not found: {archive_path}")
        try:
            with zipfile.ZipFile(archive_path, "r") as zipf:
                zipf.extractall(scratch_dir)
            logger.debug(f"Extracted archive to: {scratch_dir}")
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
            raise RestoreError(f"Invalid backup file (not a valid ZIP): {archive_path}: {e}") from e

    def _restore_snapshot(
        self,
        snapshot_path: Path,
        overwrite: bool,
        importer: SnapshotImporter,
        report: RestoreReport
    ) -> None:
        try:
            try:
                snapshot = json.loads(snapshot_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON in {self.snapshot_entry_name}: {e}") from e

            if not isinstance(snapshot, dict) or not snapshot.get("version"):
                raise ValidationError("Database backup missing version information")

            results = importer.import_snapshot(snapshot, overwrite=overwrite)
            report.database_results = results.model_dump() if hasattr(results, "model_dump") else results
            report.database_restored = True
            logger.info(f"Restored database snapshot from {self.snapshot_entry_name}")
        except Exception as e:
            logger.error(f"Error restoring database: {e}", exc_info=True)
            report.errors += 1
            report.files.append(RestoreEntry(
                filename=self.snapshot_entry_name, status="error", reason=str(e)
            ))

    def _restore_blob(self, source: Path, overwrite: bool, report: RestoreReport) -> None:
        name = source.name
        try:
            target = self.storage_path / validate_key(name)
            if not overwrite and target.exists():
                report.skipped += 1
                report.files.append(RestoreEntry(
                    filename=name, status="skipped", reason="File already exists"
                ))
                logger.debug(f"Skipped existing blob: {name}")
                return

            shutil.copyfile(source, target)
            report.restored += 1
            report.files.append(RestoreEntry(filename=name, status="restored"))
        except Exception as e:
            logger.error(f"Error restoring file {name}: {e}")
            report.errors += 1
            report.files.append(RestoreEntry(filename=name, status="error", reason=str(e)))

    def _unpack_and_merge(
        self,
        archive_path: Path,
        overwrite: bool,
        importer: Optional[SnapshotImporter]
    ) -> RestoreReport:
        logger.info(f"Starting restore from: {archive_path} (overwrite: {overwrite})")
        scratch_dir = self.temp_path / f"restore_{uuid.uuid4().hex}"

        try:
            scratch_dir.mkdir(parents=True, exist_ok=False)
            self.storage_path.mkdir(parents=True, exist_ok=True)
            self._extract_archive(archive_path, scratch_dir)

            snapshot_path = scratch_dir / self.snapshot_entry_name
            files_dir = scratch_dir / self.files_prefix
            has_snapshot = snapshot_path.is_file()
            has_files_dir = files_dir.is_dir()

            report = RestoreReport(database_found=has_snapshot)

            if has_snapshot and importer is not None:
                self._restore_snapshot(snapshot_path, overwrite, importer, report)
            elif has_snapshot:
                report.files.append(RestoreEntry(
                    filename=self.snapshot_entry_name,
                    status="skipped",
                    reason="Database restoration not requested"
                ))

            source_dir = files_dir if has_files_dir else scratch_dir
            for entry in sorted(source_dir.iterdir()):
                if entry.is_dir():
                    continue
                if not has_files_dir and entry.name == self.snapshot_entry_name:
                    continue
                self._restore_blob(entry, overwrite, report)

            logger.info(
                f"Restore finished: {report.restored} restored, {report.skipped} skipped, "
                f"{report.errors} errors (database found: {report.database_found}, "
                f"restored: {report.database_restored})"
            )
            return report

        except RestoreError:
            raise
        except OSError as e:
            raise RestoreError(f"Failed to restore backup: {e}") from e

        finally:
            if scratch_dir.exists():
                shutil.rmtree(scratch_dir, ignore_errors=True)
                logger.debug(f"Cleaned up temporary directory: {scratch_dir}")
