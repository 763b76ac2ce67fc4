from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List

from ...core.cache import CacheService, get_cache
from ...core.database import get_db
from ...core.permissions import can_access_owned_resource, can_access_participants, require
from ...core.security import CallerIdentity
from ...api.deps import get_current_caller
from ...services.message_service import MessageService
from ...schemas.message import MessageCreate, MessageResponse

router = APIRouter(prefix="/messages", tags=["Messages"])

def get_message_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> MessageService:
    return MessageService(db, cache)

@router.get("/conversation/{other_user_id}", response_model=List[MessageResponse])
def get_conversation(
    other_user_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    """Messages between the caller and another user, oldest first."""
    return message_service.get_conversation(caller.id, other_user_id)

@router.get("/user/{user_id}", response_model=List[MessageResponse])
def list_user_messages(
    user_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    require(can_access_owned_resource(caller, user_id), "You can only view your own messages")
    return message_service.list_user_messages(user_id)

@router.get("/unread", response_model=List[MessageResponse])
def list_unread_messages(
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    return message_service.list_unread(caller.id)

@router.get("/{message_id}", response_model=MessageResponse)
def get_message(
    message_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    message = message_service.get_message(message_id)
    require(
        can_access_participants(caller, message.sender_id, message.receiver_id),
        "You can only view messages you sent or received",
    )
    return message

@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    message_data: MessageCreate,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    """Send a message from the caller."""
    return message_service.send_message(caller.id, message_data)

@router.patch("/{message_id}/read", response_model=MessageResponse)
def mark_message_read(
    message_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    """Mark a message read (receiver or admin)."""
    message = message_service.get_message(message_id)
    require(can_access_owned_resource(caller, message.receiver_id), "Only the receiver can mark a message read")
    return message_service.mark_as_read(message_id)

@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: str,
    caller: CallerIdentity = Depends(get_current_caller),
    message_service: MessageService = Depends(get_message_service)
):
    """Delete a message (sender, receiver or admin)."""
    message = message_service.get_message(message_id)
    require(
        can_access_participants(caller, message.sender_id, message.receiver_id),
        "You can only delete messages you sent or received",
    )
    message_service.delete_message(message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
