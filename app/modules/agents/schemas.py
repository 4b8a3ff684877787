from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class AgentConfiguration(BaseModel):
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    model: str = "gpt-4o-mini"

    class Config:
        extra = "allow"


class AgentMetrics(BaseModel):
    totalInteractions: int = 0
    avgResponseTime: float = 0
    successRate: float = 0
    totalTokens: int = 0


class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: str = "GENERAL"
    avatar: Optional[str] = None
    capabilities: List[str] = []
    configuration: Optional[AgentConfiguration] = None


class AgentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    avatar: Optional[str] = None
    capabilities: Optional[List[str]] = None
    configuration: Optional[AgentConfiguration] = None


class AgentResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    type: str = "GENERAL"
    status: str = "ACTIVE"
    avatar: Optional[str] = None
    capabilities: List[str] = []
    configuration: Dict[str, Any] = {}
    metrics: AgentMetrics = AgentMetrics()
    last_active: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    is_owner: bool = True

    class Config:
        from_attributes = True


class AgentSummary(BaseModel):
    id: str
    name: str
    type: Optional[str] = None
    avatar: Optional[str] = None


class AgentTestRequest(BaseModel):
    message: str = Field(..., min_length=1)


class AgentTestResponse(BaseModel):
    agent_name: str
    content: str
    model: str
    usage: Dict[str, int] = {}


class AgentChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    skip_user_message: bool = False
