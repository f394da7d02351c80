"""Database models."""

from .records import MasterFile, FileRecord, Scan, utcnow

__all__ = [
    "MasterFile",
    "FileRecord",
    "Scan",
    "utcnow",
]
