from fastapi import APIRouter, Depends, UploadFile, File
from fastapi.responses import Response
from app.database.supabase_client import get_supabase
from app.modules.uploads.schemas import AttachmentResponse
from app.modules.uploads.service import UploadService
from app.modules.uploads.storage import AttachmentStorage, get_attachment_storage
from app.core.dependencies import get_current_user_id
from supabase import Client
from typing import List, Dict
from urllib.parse import quote

router = APIRouter(prefix="/uploads", tags=["uploads"])


def get_upload_service(
    supabase: Client = Depends(get_supabase),
    storage: AttachmentStorage = Depends(get_attachment_storage)
) -> UploadService:
    return UploadService(supabase, storage)


@router.post("/messages/{message_id}", response_model=AttachmentResponse, status_code=201)
async def upload_message_attachment(
    message_id: str,
    file: UploadFile = File(...),
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    """Attach a file to a chat message"""
    return await service.upload_message_attachment(message_id, file, user_data)


@router.post("/tasks/{task_id}", response_model=AttachmentResponse, status_code=201)
async def upload_task_attachment(
    task_id: str,
    file: UploadFile = File(...),
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    """Attach a file to a collaborative task"""
    return await service.upload_task_attachment(task_id, file, user_data)


@router.get("/messages/{message_id}", response_model=List[AttachmentResponse])
async def list_message_attachments(
    message_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    return service.list_message_attachments(message_id, user_data)


@router.get("/tasks/{task_id}", response_model=List[AttachmentResponse])
async def list_task_attachments(
    task_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    return service.list_task_attachments(task_id, user_data)


def content_disposition(file_name: str) -> str:
    """Inline disposition with an ASCII fallback name and the UTF-8 name (RFC 5987)"""
    fallback = "".join(c for c in file_name if c.isascii() and c.isprintable() and c not in "\"\\") or "download"
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


@router.get("/files/{kind}/{file_name}")
async def download_file(
    kind: str,
    file_name: str,
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    """Download a stored file; kind is conversation or task"""
    content, attachment = service.download_file(kind, file_name, user_data)
    return Response(
        content=content,
        media_type=attachment["file_type"],
        headers={"Content-Disposition": content_disposition(attachment["original_file_name"])}
    )


@router.delete("/{kind}/{attachment_id}", status_code=204)
async def delete_attachment(
    kind: str,
    attachment_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: UploadService = Depends(get_upload_service)
):
    """Delete an attachment row and its stored file; kind is message or task"""
    service.delete_attachment(kind, attachment_id, user_data)
    return None
