from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import List

from ...core.cache import CacheService, get_cache
from ...core.database import get_db
from ...core.permissions import can_access_owned_resource, require
from ...core.security import CallerIdentity
from ...api.deps import get_admin_caller, get_current_caller
from ...services.user_service import UserService
from ...schemas.auth import UserRegister
from ...schemas.user import ProfilePictureUpdate, UserResponse, UserUpdate

router = APIRouter(prefix="/users", tags=["Users"])

def get_user_service(
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> UserService:
    return UserService(db, cache)

@router.get("", response_model=List[UserResponse])
def list_users(
    _: CallerIdentity = Depends(get_admin_caller),
    user_service: UserService = Depends(get_user_service)
):
    """List all users (admin only)."""
    return user_service.list_users()

@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserRegister,
    _: CallerIdentity = Depends(get_admin_caller),
    user_service: UserService = Depends(get_user_service)
):
    """Create a user of any role (admin only)."""
    return user_service.create_user(user_data)

@router.get("/doctors", response_model=List[UserResponse])
def list_doctors(
    _: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    return user_service.list_doctors()

@router.get("/patients", response_model=List[UserResponse])
def list_patients(
    _: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    return user_service.list_patients()

@router.get("/search", response_model=List[UserResponse])
def search_users(
    query: str = Query(..., min_length=1, max_length=100),
    _: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    """Search users by email, first name or last name."""
    return user_service.search_users(query)

@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    _: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    return user_service.get_user(user_id)

@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    user_data: UserUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    """Update a profile (owner or admin)."""
    require(can_access_owned_resource(caller, user_id), "You can only update your own profile")
    return user_service.update_user(user_id, user_data)

@router.patch("/{user_id}/profile-picture", response_model=UserResponse)
def update_profile_picture(
    user_id: str,
    picture_data: ProfilePictureUpdate,
    caller: CallerIdentity = Depends(get_current_caller),
    user_service: UserService = Depends(get_user_service)
):
    require(can_access_owned_resource(caller, user_id), "You can only update your own profile picture")
    return user_service.update_profile_picture(user_id, picture_data.profile_picture)

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    _: CallerIdentity = Depends(get_admin_caller),
    user_service: UserService = Depends(get_user_service)
):
    """Delete a user (admin only)."""
    user_service.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
