from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union, Dict, Any
from datetime import datetime

FEEDBACK_ALIASES = {"like": 1, "dislike": -1, "none": 0}


def normalize_feedback(value: Union[int, str]) -> int:
    """Accept like/dislike or -1/0/1 and return the stored integer"""
    if isinstance(value, bool):
        raise ValueError("feedback must be one of -1, 0, 1, 'like' or 'dislike'")
    if isinstance(value, str):
        key = value.strip().lower()
        if key in FEEDBACK_ALIASES:
            return FEEDBACK_ALIASES[key]
        try:
            value = int(key)
        except ValueError:
            raise ValueError("feedback must be one of -1, 0, 1, 'like' or 'dislike'")
    if value not in (-1, 0, 1):
        raise ValueError("feedback must be one of -1, 0, 1, 'like' or 'dislike'")
    return value


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    feedback: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConversationAgent(BaseModel):
    id: str
    name: str
    avatar: Optional[str] = None
    user_id: Optional[str] = None


class ConversationResponse(BaseModel):
    id: str
    title: Optional[str] = None
    user_id: str
    agent_id: str
    agent: Optional[ConversationAgent] = None
    is_owner: bool = False
    messages: List[MessageResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    agent_id: str
    conversation_id: Optional[str] = None
    message: str = Field(..., min_length=1)
    role: str = "user"

    @field_validator("role")
    @classmethod
    def check_role(cls, value: str) -> str:
        if value not in ("user", "assistant", "system"):
            raise ValueError("role must be user, assistant or system")
        return value


class MessageCreateResponse(BaseModel):
    conversation_id: str
    message: MessageResponse


class FeedbackRequest(BaseModel):
    message_id: str
    feedback: Union[int, str]

    @field_validator("feedback")
    @classmethod
    def check_feedback(cls, value: Union[int, str]) -> int:
        return normalize_feedback(value)


class FeedbackResponse(BaseModel):
    message_id: str
    feedback: int
