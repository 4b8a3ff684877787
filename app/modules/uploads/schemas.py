from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AttachmentResponse(BaseModel):
    id: str
    file_name: str
    original_file_name: str
    file_path: str
    file_type: str
    file_size: int
    uploaded_at: Optional[datetime] = None
    message_id: Optional[str] = None
    task_id: Optional[str] = None
    uploaded_by: Optional[str] = None

    class Config:
        from_attributes = True
