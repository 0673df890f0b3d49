"""
Upload Routes for Gearhead Assistant

File upload (multipart or Google Drive), listing, download and deletion.
"""

import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile

from gearhead.api.dependencies import (
    get_current_user_id,
    get_file_service,
    get_google_drive_client,
)
from gearhead.infrastructure.exceptions import UnsupportedMediaTypeError, ValidationError
from gearhead.infrastructure.services.file_service import FileService, UploadedContent
from gearhead.infrastructure.services.google_drive import GoogleDriveClient


logger = logging.getLogger(__name__)

router = APIRouter()

GOOGLE_DRIVE_SOURCE = "googleDrive"


class FileInfo(BaseModel):
    id: UUID
    filename: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    openai_file_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UploadResponse(BaseModel):
    success: bool = True
    file_id: UUID = Field(..., serialization_alias="fileId")


class FileListResponse(BaseModel):
    success: bool = True
    files: List[FileInfo]


def _parse_uuid(value, field_name: str) -> str:
    if not value:
        raise ValidationError(f"Missing {field_name}")
    try:
        return str(UUID(str(value)))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}")


async def _read_multipart(request: Request):
    form = await request.form()
    upload = form.get("file")
    assistant_id = form.get("assistantId")
    if not isinstance(upload, UploadFile) or not assistant_id:
        raise ValidationError("File and assistantId are required")

    data = await upload.read()
    content = UploadedContent(
        filename=upload.filename or "upload",
        data=data,
        mime_type=upload.content_type or "application/octet-stream",
    )
    return _parse_uuid(assistant_id, "assistantId"), content


async def _read_drive_request(request: Request, user_id: str, drive: GoogleDriveClient):
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict) or body.get("sourceType") != GOOGLE_DRIVE_SOURCE:
        raise ValidationError("Unsupported sourceType")

    drive_file_id = body.get("driveFileId")
    file_name = body.get("fileName")
    if not drive_file_id or not file_name or not body.get("assistantId"):
        raise ValidationError("driveFileId, fileName and assistantId are required")
    assistant_id = _parse_uuid(body.get("assistantId"), "assistantId")

    content = await drive.download(user_id, drive_file_id, file_name)
    return assistant_id, content


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
    drive: GoogleDriveClient = Depends(get_google_drive_client),
):
    """
    Upload a file and index it in the assistant's vector store.

    Accepts multipart/form-data (file, assistantId) or a JSON Google Drive
    reference.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        assistant_id, content = await _read_multipart(request)
    elif content_type.startswith("application/json"):
        assistant_id, content = await _read_drive_request(request, user_id, drive)
    else:
        raise UnsupportedMediaTypeError(f"Unsupported content type: {content_type or 'none'}")

    record = await file_service.ingest(user_id, assistant_id, content)
    return UploadResponse(file_id=record.id)


@router.get("/upload")
async def get_files(
    file_id: Optional[UUID] = None,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    """
    Download one file as an attachment, or list the user's files.
    """
    if file_id is None:
        files = await file_service.list_files(user_id)
        return FileListResponse(files=[FileInfo.model_validate(f) for f in files])

    record, data = await file_service.download(user_id, str(file_id))
    return Response(
        content=data,
        media_type=record.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.filename)}"},
    )


@router.delete("/upload")
async def delete_file(
    file_id: Optional[UUID] = None,
    user_id: str = Depends(get_current_user_id),
    file_service: FileService = Depends(get_file_service),
):
    if file_id is None:
        raise ValidationError("Missing file_id")

    await file_service.delete(user_id, str(file_id))
    return {"success": True}
