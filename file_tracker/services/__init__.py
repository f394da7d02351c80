"""Services package."""

from .blob_storage import BlobStore, BlobStorageError, BlobNotFoundError, RestoreError, RestoreReport
from .snapshot_service import SnapshotService, SnapshotValidationError, SnapshotImportError, ImportResults
from .record_service import RecordService
from .backup_service import BackupService, default_export_name, default_backup_name

__all__ = [
    'BlobStore',
    'BlobStorageError',
    'BlobNotFoundError',
    'RestoreError',
    'RestoreReport',
    'SnapshotService',
    'SnapshotValidationError',
    'SnapshotImportError',
    'ImportResults',
    'RecordService',
    'BackupService',
    'default_export_name',
    'default_backup_name',
]
