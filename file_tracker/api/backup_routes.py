"""API routes for export/import, full backups and blob storage maintenance."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from file_tracker.context import ServiceContext
from file_tracker.services import default_backup_name, default_export_name

from .dependencies import get_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["backup"])


class PathRequest(BaseModel):
    """Target path chosen by the caller; omitted means the user cancelled."""
    path: Optional[str] = None


class RestoreRequest(PathRequest):
    overwrite: bool = False


class FilesExportRequest(PathRequest):
    filenames: Optional[List[str]] = Field(None, description="Blob keys to export; all when omitted")


@router.get("/backup/defaults")
async def backup_defaults():
    """Suggested file names for save dialogs."""
    return {"export": default_export_name(), "backup": default_backup_name()}


@router.post("/data/export")
async def export_data(request: PathRequest, context: ServiceContext = Depends(get_context)):
    return await context.backups.export_data(request.path)


@router.post("/data/import")
async def import_data(request: RestoreRequest, context: ServiceContext = Depends(get_context)):
    return await context.backups.import_data(request.path, overwrite=request.overwrite)


@router.post("/backup")
async def create_backup(request: PathRequest, context: ServiceContext = Depends(get_context)):
    """Write a full backup: every stored file plus a snapshot of the records."""
    return await context.backups.create_full_backup(request.path)


@router.post("/backup/restore")
async def restore_backup(request: RestoreRequest, context: ServiceContext = Depends(get_context)):
    return await context.backups.restore_full_backup(request.path, overwrite=request.overwrite)


@router.post("/storage/export")
async def export_files(request: FilesExportRequest, context: ServiceContext = Depends(get_context)):
    return await context.backups.export_files(request.path, request.filenames)


@router.post("/storage/import")
async def import_files(request: RestoreRequest, context: ServiceContext = Depends(get_context)):
    return await context.backups.import_files(request.path, overwrite=request.overwrite)


@router.get("/storage/stats")
async def storage_stats(context: ServiceContext = Depends(get_context)):
    return await context.blob_store.stats()


@router.post("/storage/sweep")
async def sweep_storage(context: ServiceContext = Depends(get_context)):
    """Remove stored files no scan refers to."""
    return await context.records.sweep_orphan_blobs()
