from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union
from datetime import datetime

from app.modules.conversations.schemas import normalize_feedback

TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


def _check_priority(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.upper()
    if value not in TASK_PRIORITIES:
        raise ValueError(f"priority must be one of {', '.join(TASK_PRIORITIES)}")
    return value


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    priority: str = "MEDIUM"
    parent_task_id: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def check_priority(cls, value: str) -> str:
        return _check_priority(value)


class TaskVersionCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def check_priority(cls, value: Optional[str]) -> Optional[str]:
        return _check_priority(value)


class TaskFeedbackRequest(BaseModel):
    feedback: Union[int, str]

    @field_validator("feedback")
    @classmethod
    def check_feedback(cls, value: Union[int, str]) -> int:
        return normalize_feedback(value)


class AssignmentResponse(BaseModel):
    id: str
    task_id: str
    agent_id: str
    agent_name: Optional[str] = None
    role: Optional[str] = None
    subtask_description: str
    status: str = "PENDING"
    result: Optional[str] = None
    confidence: Optional[float] = None
    execution_order: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ContributionResponse(BaseModel):
    id: str
    task_id: str
    agent_id: str
    agent_name: Optional[str] = None
    contribution: str
    confidence: Optional[float] = None
    created_at: Optional[datetime] = None


class TaskResponse(BaseModel):
    id: str
    team_id: str
    user_id: str
    title: str
    description: str
    status: str = "PENDING"
    priority: str = "MEDIUM"
    result: Optional[str] = None
    feedback: Optional[int] = None
    version_number: int = 1
    parent_task_id: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    creator_name: Optional[str] = None
    version_count: Optional[int] = None
    is_owner: bool = False
    can_edit: bool = False
    assignments: List[AssignmentResponse] = []
    contributions: List[ContributionResponse] = []


class TaskVersionsResponse(BaseModel):
    task: TaskResponse
    versions: List[TaskResponse]
