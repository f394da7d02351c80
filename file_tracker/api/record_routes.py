"""API routes for file records, scans and master files."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel

from file_tracker.context import ServiceContext

from .dependencies import get_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["records"])


# Request models

class FileRecordRequest(BaseModel):
    """Create/update payload for a file record."""
    title: Optional[str] = None
    reference_number: Optional[str] = None
    description: Optional[str] = None
    date_received: Optional[str] = None
    date_sent: Optional[str] = None
    tags: Optional[str] = None
    master_file_id: Optional[int] = None


class MasterFileRequest(BaseModel):
    """Create/update payload for a master file."""
    name: Optional[str] = None
    description: Optional[str] = None


def _params(**values: Any) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


# File records

@router.get("/files")
async def list_files(
    search: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    tags: Optional[str] = None,
    master_file_id: Optional[str] = Query(None, alias="masterFileId"),
    page: Optional[str] = None,
    limit: Optional[str] = None,
    context: ServiceContext = Depends(get_context)
):
    """List file records with search, filters and pagination (``limit=all`` disables paging)."""
    return context.records.list_file_records(_params(
        search=search,
        dateFrom=date_from,
        dateTo=date_to,
        tags=tags,
        masterFileId=master_file_id,
        page=page,
        limit=limit
    ))


@router.post("/files", status_code=201)
async def create_file(request: FileRecordRequest, context: ServiceContext = Depends(get_context)):
    return context.records.create_file_record(request.model_dump())


@router.get("/files/{record_id}")
async def get_file(record_id: int, context: ServiceContext = Depends(get_context)):
    return context.records.get_file_record(record_id)


@router.put("/files/{record_id}")
async def update_file(
    record_id: int,
    request: FileRecordRequest,
    context: ServiceContext = Depends(get_context)
):
    return context.records.update_file_record(record_id, request.model_dump())


@router.delete("/files/{record_id}")
async def delete_file(record_id: int, context: ServiceContext = Depends(get_context)):
    """Delete a record together with its scans and their stored files."""
    return await context.records.delete_file_record(record_id)


# Scans

@router.get("/files/{record_id}/scans")
async def list_scans(record_id: int, context: ServiceContext = Depends(get_context)):
    return context.records.list_scans(record_id)


@router.post("/files/{record_id}/scans", status_code=201)
async def upload_scan(
    record_id: int,
    file: UploadFile = File(...),
    mimetype: Optional[str] = Form(None),
    context: ServiceContext = Depends(get_context)
):
    """Attach an uploaded document to a file record."""
    content = await file.read()
    return await context.records.add_scan(
        record_id,
        content,
        file.filename or "upload",
        mimetype or None
    )


@router.get("/scans/{scan_id}")
async def get_scan(scan_id: int, context: ServiceContext = Depends(get_context)):
    scan = context.records.get_scan(scan_id)
    scan["path"] = str(context.records.get_scan_path(scan_id))
    return scan


@router.get("/scans/{scan_id}/content")
async def get_scan_content(scan_id: int, context: ServiceContext = Depends(get_context)):
    """Scan bytes as base64 with mimetype and original filename."""
    return await context.records.get_scan_content(scan_id)


@router.delete("/scans/{scan_id}")
async def delete_scan(scan_id: int, context: ServiceContext = Depends(get_context)):
    return await context.records.delete_scan(scan_id)


# Master files

@router.get("/master-files")
async def list_master_files(
    search: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    context: ServiceContext = Depends(get_context)
):
    return context.records.list_master_files(_params(search=search, page=page, limit=limit))


@router.get("/master-files/all")
async def list_all_master_files(context: ServiceContext = Depends(get_context)):
    """Every master file, alphabetical, without pagination."""
    return context.records.list_all_master_files()


@router.post("/master-files", status_code=201)
async def create_master_file(request: MasterFileRequest, context: ServiceContext = Depends(get_context)):
    return context.records.create_master_file(request.name, request.description)


@router.get("/master-files/{master_file_id}")
async def get_master_file(master_file_id: int, context: ServiceContext = Depends(get_context)):
    return context.records.get_master_file(master_file_id)


@router.put("/master-files/{master_file_id}")
async def update_master_file(
    master_file_id: int,
    request: MasterFileRequest,
    context: ServiceContext = Depends(get_context)
):
    return context.records.update_master_file(master_file_id, request.name, request.description)


@router.delete("/master-files/{master_file_id}")
async def delete_master_file(master_file_id: int, context: ServiceContext = Depends(get_context)):
    """Delete a master file; its file records are kept and unassigned."""
    return context.records.delete_master_file(master_file_id)
