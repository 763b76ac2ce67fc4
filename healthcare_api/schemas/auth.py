from typing import Optional
import re

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from ..core.security import UserRole
from .common import NAME_PATTERN
from .user import UserResponse

PASSWORD_SPECIALS = "@$!%*?&"


def check_password_strength(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"\d", password)
        and any(ch in PASSWORD_SPECIALS for ch in password)
    ):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one digit, and one special character"
        )
    return password


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    last_name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    role: UserRole = UserRole.PATIENT
    specialization: Optional[str] = Field(None, max_length=200)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)
    # Optional proof that the caller held the (possibly expired) access token
    access_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(TokenResponse):
    user: UserResponse


class PasswordReset(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=72)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class ChangePassword(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=72)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def differs_from_current(self):
        if self.current_password == self.new_password:
            raise ValueError("New password must differ from the current password")
        return self
