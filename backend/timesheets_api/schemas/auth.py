"""
Authentication and user-related Pydantic schemas.

Defines request/response models for login and the current user profile.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserLoginRequest(BaseModel):
    """User login request schema."""
    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., min_length=1, description="User password")


class UserInfo(BaseModel):
    """User information schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="User email address")
    role: str = Field(..., description="User role")
    active: bool = Field(..., description="Whether user is active")
    timezone: str = Field(..., description="Timezone used to read and write timesheet dates")
    hourly_rate: Optional[float] = Field(None, description="Fallback hourly rate")


class AuthResponse(BaseModel):
    """Authentication response schema."""
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserInfo = Field(..., description="User information")
