from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .user import UserResponse


class MessageCreate(BaseModel):
    receiver_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=2000)
    encrypted: bool = False
    integrity_hash: Optional[str] = Field(None, max_length=500)


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    receiver_id: str
    content: str
    encrypted: bool
    integrity_hash: Optional[str] = None
    read: bool
    created_at: datetime
    updated_at: datetime
    sender: Optional[UserResponse] = None
    receiver: Optional[UserResponse] = None
