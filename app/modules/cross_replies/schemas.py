from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class CrossReplyCreate(BaseModel):
    original_message_id: str
    original_agent_id: str
    original_conversation_id: str
    title: Optional[str] = None
    question_content: str = Field(..., min_length=1)


class CrossReplyResponseCreate(BaseModel):
    agent_id: str
    conversation_id: str
    response_message_id: str


class CrossAgentResponse(BaseModel):
    id: str
    agent_id: str
    agent_name: str = "Unknown Agent"
    conversation_id: str
    response_message_id: str
    response_content: str = ""
    created_at: Optional[datetime] = None


class CrossReplyResponse(BaseModel):
    id: str
    user_id: str
    original_message_id: str
    original_agent_id: str
    original_conversation_id: str
    title: Optional[str] = None
    question_content: str
    responses: List[CrossAgentResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
