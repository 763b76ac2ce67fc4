from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from ...core.cache import CacheService, get_cache
from ...core.database import get_db
from ...core.permissions import can_access_owned_resource, is_admin, require
from ...core.security import CallerIdentity
from ...api.deps import get_admin_caller, get_current_caller
from ...services.reminder_service import ReminderService
from ...schemas.reminder import MarkAllReadResponse, ReminderCreate, ReminderResponse

router = APIRouter(prefix="/reminders", tags=["Reminders"])

def get_reminder_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> ReminderService:
    return ReminderService(db, cache)

def _owned(reminder_service: ReminderService, reminder_id: str, caller: CallerIdentity) -> ReminderResponse:
    reminder = reminder_service.get_reminder(reminder_id)
    require(can_access_owned_resource(caller, reminder.user_id), "You can only access your own reminders")
    return reminder

@router.get("", response_model=List[ReminderResponse])
def list_reminders(
    _: CallerIdentity = Depends(get_admin_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    """List all reminders (admin only)."""
    return reminder_service.list_reminders()

@router.get("/upcoming", response_model=List[ReminderResponse])
def list_upcoming_reminders(
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    return reminder_service.list_upcoming(caller.id)

@router.get("/unread", response_model=List[ReminderResponse])
def list_unread_reminders(
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    return reminder_service.list_unread(caller.id)

@router.get("/user/{user_id}", response_model=List[ReminderResponse])
def list_user_reminders(
    user_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    require(can_access_owned_resource(caller, user_id), "You can only view your own reminders")
    return reminder_service.list_by_user(user_id)

@router.get("/appointment/{appointment_id}", response_model=List[ReminderResponse])
def list_appointment_reminders(
    appointment_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    """Reminders for an appointment; non-admins only see their own."""
    reminders = reminder_service.list_by_appointment(appointment_id)
    if is_admin(caller):
        return reminders
    return [r for r in reminders if r.user_id == caller.id]

@router.patch("/mark-all-read", response_model=MarkAllReadResponse)
def mark_all_reminders_read(
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    count = reminder_service.mark_all_as_read(caller.id)
    return MarkAllReadResponse(message=f"Marked {count} reminders as read", count=count)

@router.get("/{reminder_id}", response_model=ReminderResponse)
def get_reminder(
    reminder_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    return _owned(reminder_service, reminder_id, caller)

@router.post("", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
def create_reminder(
    reminder_data: ReminderCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    """Create a reminder for the caller (admins for anyone)."""
    require(can_access_owned_resource(caller, reminder_data.user_id), "You can only create your own reminders")
    return reminder_service.create_reminder(reminder_data)

@router.patch("/{reminder_id}/read", response_model=ReminderResponse)
def mark_reminder_read(
    reminder_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    _owned(reminder_service, reminder_id, caller)
    return reminder_service.mark_as_read(reminder_id)

@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reminder(
    reminder_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    reminder_service: ReminderService = Depends(get_reminder_service)
):
    _owned(reminder_service, reminder_id, caller)
    reminder_service.delete_reminder(reminder_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
