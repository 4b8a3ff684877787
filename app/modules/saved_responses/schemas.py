from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class SavedResponseCreate(BaseModel):
    original_agent_id: str
    original_conversation_id: Optional[str] = None
    original_message_id: Optional[str] = None
    original_response: str = Field(..., min_length=1)
    question_text: Optional[str] = None
    target_agent_id: Optional[str] = None


class SavedResponseTargetUpdate(BaseModel):
    target_agent_id: str


class SavedResponseResponse(BaseModel):
    id: str
    user_id: str
    original_agent_id: str
    original_conversation_id: Optional[str] = None
    original_message_id: Optional[str] = None
    original_response: str
    question_text: Optional[str] = None
    target_agent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
