from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..core.security import UserRole
from .common import NAME_PATTERN


class UserResponse(BaseModel):
    """User view without credentials."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    profile_picture: Optional[str] = None
    specialization: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100, pattern=NAME_PATTERN)
    last_name: Optional[str] = Field(None, max_length=100, pattern=NAME_PATTERN)
    email: Optional[EmailStr] = None
    specialization: Optional[str] = Field(None, max_length=200)


class ProfilePictureUpdate(BaseModel):
    profile_picture: str = Field(..., min_length=1, max_length=500)
