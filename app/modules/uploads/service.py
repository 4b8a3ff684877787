import os
import uuid
import logging
from supabase import Client
from fastapi import HTTPException, UploadFile
from typing import Any, Dict, List, Tuple

from app.config import settings
from app.core.dependencies import check_agent_access
from app.database.supabase_client import first_or_none
from app.modules.tasks.service import TaskService
from app.modules.uploads.schemas import AttachmentResponse
from app.modules.uploads.storage import AttachmentStorage, CONVERSATIONS_FOLDER, TASKS_FOLDER

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
}

# URL kind -> (attachment table, storage folder)
FILE_KINDS = {
    "conversation": ("message_attachments", CONVERSATIONS_FOLDER),
    "task": ("task_attachments", TASKS_FOLDER),
}
ATTACHMENT_KINDS = {
    "message": "message_attachments",
    "task": "task_attachments",
}


def validate_file(content_type: str, size: int):
    """Raise 400 for disallowed MIME types or files over the size limit"""
    if content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"File type {content_type} is not allowed. Allowed types: images, PDFs, Office documents, and text files."
        )
    if size > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File size {size / 1024 / 1024:.2f}MB exceeds maximum allowed size of {settings.max_upload_size_mb}MB."
        )


class UploadService:
    def __init__(self, supabase: Client, storage: AttachmentStorage):
        self.supabase = supabase
        self.storage = storage

    def _check_message_access(self, message_id: str, user_data: dict) -> Dict[str, Any]:
        message = first_or_none(
            self.supabase.table("messages")
            .select("id, conversation_id")
            .eq("id", message_id)
            .limit(1)
            .execute()
        )
        if not message:
            raise HTTPException(status_code=404, detail="Message not found")
        conversation = first_or_none(
            self.supabase.table("conversations")
            .select("id, agent_id")
            .eq("id", message["conversation_id"])
            .limit(1)
            .execute()
        )
        if not conversation:
            raise HTTPException(status_code=404, detail="Conversation not found")
        check_agent_access(conversation["agent_id"], user_data, self.supabase)
        return message

    def _check_task_access(self, task_id: str, user_data: dict) -> Dict[str, Any]:
        task = first_or_none(
            self.supabase.table("collaborative_tasks")
            .select("id, team_id")
            .eq("id", task_id)
            .limit(1)
            .execute()
        )
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        TaskService(self.supabase).check_task_access(task["team_id"], task_id, user_data)
        return task

    async def _store(self, file: UploadFile, folder: str) -> Dict[str, Any]:
        content = await file.read()
        content_type = file.content_type or "application/octet-stream"
        validate_file(content_type, len(content))
        original_name = file.filename or "upload"
        file_name = f"{uuid.uuid4()}{os.path.splitext(original_name)[1]}"
        try:
            file_path = self.storage.upload(content, folder, file_name, content_type)
        except Exception as e:
            logger.error(f"Attachment upload failed: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to upload to storage: {str(e)}")
        return {
            "file_name": file_name,
            "original_file_name": original_name,
            "file_path": file_path,
            "file_type": content_type,
            "file_size": len(content),
        }

    async def upload_message_attachment(self, message_id: str, file: UploadFile, user_data: dict) -> AttachmentResponse:
        self._check_message_access(message_id, user_data)
        row = await self._store(file, CONVERSATIONS_FOLDER)
        result = self.supabase.table("message_attachments").insert({**row, "message_id": message_id}).execute()
        logger.info(f"Attachment {row['file_name']} stored for message {message_id}")
        return AttachmentResponse(**result.data[0])

    async def upload_task_attachment(self, task_id: str, file: UploadFile, user_data: dict) -> AttachmentResponse:
        self._check_task_access(task_id, user_data)
        row = await self._store(file, TASKS_FOLDER)
        result = self.supabase.table("task_attachments").insert({
            **row,
            "task_id": task_id,
            "uploaded_by": user_data["id"],
        }).execute()
        logger.info(f"Attachment {row['file_name']} stored for task {task_id}")
        return AttachmentResponse(**result.data[0])

    def list_message_attachments(self, message_id: str, user_data: dict) -> List[AttachmentResponse]:
        self._check_message_access(message_id, user_data)
        result = self.supabase.table("message_attachments")\
            .select("*")\
            .eq("message_id", message_id)\
            .order("uploaded_at")\
            .execute()
        return [AttachmentResponse(**a) for a in result.data or []]

    def list_task_attachments(self, task_id: str, user_data: dict) -> List[AttachmentResponse]:
        self._check_task_access(task_id, user_data)
        result = self.supabase.table("task_attachments")\
            .select("*")\
            .eq("task_id", task_id)\
            .order("uploaded_at")\
            .execute()
        return [AttachmentResponse(**a) for a in result.data or []]

    def _check_attachment_access(self, table: str, attachment: Dict[str, Any], user_data: dict):
        if table == "message_attachments":
            self._check_message_access(attachment["message_id"], user_data)
        else:
            self._check_task_access(attachment["task_id"], user_data)

    def download_file(self, kind: str, file_name: str, user_data: dict) -> Tuple[bytes, Dict[str, Any]]:
        """Return (bytes, attachment row) for a stored file"""
        if kind not in FILE_KINDS:
            raise HTTPException(status_code=400, detail="Invalid file type. Use 'conversation' or 'task'")
        table, folder = FILE_KINDS[kind]
        attachment = first_or_none(
            self.supabase.table(table)
            .select("*")
            .eq("file_name", file_name)
            .limit(1)
            .execute()
        )
        if not attachment:
            raise HTTPException(status_code=404, detail="File not found")
        self._check_attachment_access(table, attachment, user_data)
        try:
            content = self.storage.download(attachment["file_path"])
        except Exception as e:
            logger.warning(f"Stored file missing for {folder}/{file_name}: {e}")
            raise HTTPException(status_code=404, detail="File not found")
        return content, attachment

    def delete_attachment(self, kind: str, attachment_id: str, user_data: dict) -> bool:
        if kind not in ATTACHMENT_KINDS:
            raise HTTPException(status_code=400, detail="Invalid attachment type. Use 'message' or 'task'")
        table = ATTACHMENT_KINDS[kind]
        attachment = first_or_none(
            self.supabase.table(table)
            .select("*")
            .eq("id", attachment_id)
            .limit(1)
            .execute()
        )
        if not attachment:
            raise HTTPException(status_code=404, detail="Attachment not found")
        self._check_attachment_access(table, attachment, user_data)
        self.storage.delete(attachment["file_path"])
        result = self.supabase.table(table)\
            .delete()\
            .eq("id", attachment_id)\
            .execute()
        logger.info(f"Deleted {kind} attachment {attachment_id}")
        return len(result.data) > 0
