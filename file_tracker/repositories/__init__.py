"""Repository layer for database operations."""

from .file_record_repository import FileRecordRepository
from .master_file_repository import MasterFileRepository
from .scan_repository import ScanRepository
from .queries import FileQuery, MasterFileQuery, SHOW_ALL, build_pagination

__all__ = [
    "FileRecordRepository",
    "MasterFileRepository",
    "ScanRepository",
    "FileQuery",
    "MasterFileQuery",
    "SHOW_ALL",
    "build_pagination",
]
