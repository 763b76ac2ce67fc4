from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ...core.cache import CacheService, get_cache
from ...core.database import get_db
from ...core.security import CallerIdentity, TokenService, get_token_service
from ...api.deps import get_current_caller, get_current_user, rate_limit_check
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, AuthResponse,
    RefreshTokenRequest, PasswordReset, PasswordResetConfirm, ChangePassword
)
from ...schemas.common import StatusMessage
from ...schemas.user import UserResponse
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

def get_auth_service(
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    cache: CacheService = Depends(get_cache),
) -> AuthService:
    return AuthService(db, tokens, cache)

@router.post("/register", response_model=AuthResponse)
def register(
    user_data: UserRegister,
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit_check)
):
    """Register a new user."""
    return auth_service.register_user(user_data)

@router.post("/login", response_model=AuthResponse)
def login(
    login_data: UserLogin,
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit_check)
):
    """Authenticate user and return access tokens."""
    return auth_service.authenticate_user(login_data)

@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(
    refresh_data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Exchange a refresh token for a new token pair."""
    return auth_service.refresh_tokens(refresh_data.refresh_token, refresh_data.access_token)

@router.post("/logout", response_model=StatusMessage)
def logout(
    refresh_data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Logout user by revoking refresh token."""
    auth_service.logout_user(refresh_data.refresh_token)
    return StatusMessage(message="Successfully logged out")

@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.model_validate(current_user)

@router.post("/change-password", response_model=StatusMessage)
def change_password(
    password_data: ChangePassword,
    caller: CallerIdentity = Depends(get_current_caller),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Change user password."""
    auth_service.change_password(caller.id, password_data)
    return StatusMessage(message="Password changed successfully")

@router.post("/forgot-password", response_model=StatusMessage)
def forgot_password(
    reset_data: PasswordReset,
    auth_service: AuthService = Depends(get_auth_service),
    _: None = Depends(rate_limit_check)
):
    """Request password reset."""
    # The token is never returned over HTTP; delivery is out of band
    auth_service.request_password_reset(reset_data.email)
    return StatusMessage(message="If the email exists, a password reset link has been sent")

@router.post("/reset-password", response_model=StatusMessage)
def reset_password(
    reset_data: PasswordResetConfirm,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Reset password using reset token."""
    auth_service.reset_password(reset_data)
    return StatusMessage(message="Password reset successfully")
