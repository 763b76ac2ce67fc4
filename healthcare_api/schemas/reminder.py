from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .appointment import AppointmentResponse
from .common import to_naive_utc
from .user import UserResponse


class ReminderCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    appointment_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    reminder_date: datetime

    @field_validator("reminder_date")
    @classmethod
    def naive_utc(cls, value):
        return to_naive_utc(value)


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    appointment_id: str
    title: str
    message: str
    reminder_date: datetime
    is_read: bool
    created_at: datetime
    updated_at: datetime
    user: Optional[UserResponse] = None
    # None once the appointment has been deleted
    appointment: Optional[AppointmentResponse] = None


class MarkAllReadResponse(BaseModel):
    message: str
    count: int
