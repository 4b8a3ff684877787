from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.modules.agents.schemas import AgentSummary


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    user_id: str
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupMemberResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupRoleResponse(BaseModel):
    group_id: str
    role: Optional[str] = None
    is_member: bool


class GroupMessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class GroupMessageResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupAgentAdd(BaseModel):
    agent_id: str


class GroupAgentResponse(BaseModel):
    id: str
    group_id: str
    agent_id: str
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None
    agent: Optional[AgentSummary] = None


class GroupAgentChatRequest(BaseModel):
    message: str = Field(..., min_length=1)


class GroupAgentMessageResponse(BaseModel):
    id: str
    group_id: str
    agent_id: str
    user_id: Optional[str] = None
    message: str
    created_at: Optional[datetime] = None
