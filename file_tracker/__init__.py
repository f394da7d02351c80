"""File Tracker - document tracking with scan attachments and zip backups."""

__version__ = "0.1.0"
