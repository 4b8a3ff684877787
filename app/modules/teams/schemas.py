from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.modules.agents.schemas import AgentSummary

TEAM_STATUSES = ("ACTIVE", "ARCHIVED")


class TeamMemberAdd(BaseModel):
    agent_id: str
    role: str = Field(..., min_length=1)
    is_primary_agent: bool = False


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    objective: Optional[str] = None
    members: List[TeamMemberAdd] = []


class TeamUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    objective: Optional[str] = None


class TeamMemberResponse(BaseModel):
    id: str
    team_id: str
    agent_id: str
    role: str
    is_primary_agent: bool = False
    added_at: Optional[datetime] = None
    agent: Optional[AgentSummary] = None

    class Config:
        from_attributes = True


class TeamResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    objective: Optional[str] = None
    status: str = "ACTIVE"
    members: List[TeamMemberResponse] = []
    is_owner: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
