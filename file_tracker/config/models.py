"""Pydantic models for configuration validation."""

from pathlib import Path
from pydantic import BaseModel, Field, field_validator, ConfigDict


class PathsConfig(BaseModel):
    """File path configuration."""
    
    data: Path = Path("data")
    database_file: str = "filetracker.db"  # Relative to data
    storage_dir: str = "storage"  # Relative to data
    temp_dir: str = "temp"  # Relative to data
    
    @field_validator('data')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)
    
    @property
    def database_path(self) -> Path:
        return self.data / self.database_file
    
    @property
    def storage_path(self) -> Path:
        return self.data / self.storage_dir
    
    @property
    def temp_path(self) -> Path:
        return self.data / self.temp_dir


class BackupConfig(BaseModel):
    """Archive and snapshot settings."""
    
    compression_level: int = Field(default=9, ge=0, le=9)
    snapshot_entry_name: str = Field(
        default="database.json",
        description="Name of the metadata snapshot inside a full backup archive"
    )
    files_prefix: str = Field(
        default="files",
        description="Archive folder holding blobs in a full backup"
    )
    
    @field_validator('snapshot_entry_name', 'files_prefix')
    @classmethod
    def validate_entry_name(cls, v: str) -> str:
        """Archive entry names must be single path components."""
        v = v.strip()
        if not v or '/' in v or '\\' in v:
            raise ValueError('must be a plain name without path separators')
        return v


class PaginationConfig(BaseModel):
    """List pagination defaults."""
    
    default_limit: int = Field(default=10, gt=0)


class SystemConfig(BaseModel):
    """Top-level system configuration."""
    
    model_config = ConfigDict(extra='ignore')
    
    paths: PathsConfig = Field(default_factory=PathsConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    debug: bool = False
    api_host: str = "localhost"
    api_port: int = Field(default=8080, gt=0, le=65535)
