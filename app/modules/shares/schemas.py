from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

SHARE_STATUSES = ("pending", "approved", "rejected", "revoked")


class ShareRequestCreate(BaseModel):
    resource_type: str
    resource_id: str
    message: Optional[str] = None

    @field_validator("resource_type")
    @classmethod
    def validate_resource_type(cls, v: str) -> str:
        if v not in ("agent", "team", "task"):
            raise ValueError("resource_type must be one of: agent, team, task")
        return v


class ShareRequestResponse(BaseModel):
    id: str
    resource_type: str
    resource_id: str
    requester_user_id: str
    owner_user_id: str
    status: str
    message: Optional[str] = None
    resource_name: Optional[str] = None
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SharedResourceResponse(BaseModel):
    id: str
    resource_type: str
    resource_id: str
    user_id: str
    granted_by: str
    resource_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
