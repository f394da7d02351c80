"""Exception hierarchy shared by the store, the blob store and the services."""

from typing import Any, Optional


class FileTrackerError(Exception):
    """Base exception for all File Tracker errors."""
    pass


class ValidationError(FileTrackerError):
    """Input failed validation (missing version, empty title, bad key...)."""
    pass


class NotFoundError(FileTrackerError):
    """A requested record or blob does not exist."""

    def __init__(self, entity: str, identifier: Any, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} not found: {identifier}")


class ConflictError(FileTrackerError):
    """Write rejected because it collides with existing data."""
    pass
