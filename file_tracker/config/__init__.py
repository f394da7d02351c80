"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    PathsConfig,
    BackupConfig,
    PaginationConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "BackupConfig",
    "PaginationConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
