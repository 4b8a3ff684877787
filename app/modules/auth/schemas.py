from pydantic import BaseModel, EmailStr
from typing import Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None


class UserProfile(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    user: UserProfile


class RegisterResponse(BaseModel):
    user: UserProfile
    access_token: Optional[str] = None
    message: str


class SyncUsersResponse(BaseModel):
    synced: int
    skipped: int
    total: int
