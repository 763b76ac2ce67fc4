from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, Tuple
import logging

from ..models.user import User
from ..core.cache import CacheService
from ..core.config import settings
from ..core.exceptions import (
    InvalidCredentialsError, InvalidInputError, InvalidOperationError, InvalidTokenError
)
from ..core.security import (
    TokenService, UserRole, verify_password, get_password_hash, hash_token,
    generate_password_reset_token
)
from ..schemas.auth import (
    UserLogin, UserRegister, TokenResponse, AuthResponse,
    PasswordResetConfirm, ChangePassword
)
from ..schemas.user import UserResponse
from .cache_keys import invalidate_user

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session, tokens: TokenService, cache: CacheService):
        self.db = db
        self.tokens = tokens
        self.cache = cache

    def register_user(self, user_data: UserRegister) -> AuthResponse:
        """Register a new user and sign them in."""
        if user_data.role == UserRole.ADMIN:
            raise InvalidInputError.for_field("role", "Administrators can only be created by an administrator")

        existing_user = self.db.query(User).filter(
            User.email == user_data.email
        ).first()

        if existing_user:
            raise InvalidOperationError("Email already registered")

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            role=user_data.role,
            specialization=user_data.specialization,
        )
        self.db.add(new_user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Another request registered the same email after the check above
            self.db.rollback()
            raise InvalidOperationError("Email already registered") from exc

        access_token, refresh_token = self._rotate_tokens(new_user)

        self.db.commit()
        self.db.refresh(new_user)
        invalidate_user(self.cache, new_user.id)

        logger.info(f"Registered user {new_user.id} with role {new_user.role.value}")
        return self._auth_response(new_user, access_token, refresh_token)

    def authenticate_user(self, login_data: UserLogin) -> AuthResponse:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        # Unknown email and wrong password are indistinguishable to the caller
        if not user or not verify_password(login_data.password, user.password_hash):
            logger.warning("Failed login attempt")
            raise InvalidCredentialsError()

        access_token, refresh_token = self._rotate_tokens(user)
        self.db.commit()
        self.db.refresh(user)

        return self._auth_response(user, access_token, refresh_token)

    def refresh_tokens(self, refresh_token: str, access_token: Optional[str] = None) -> TokenResponse:
        """Exchange a refresh token for a new token pair.

        The presented token is single use: the stored hash is swapped in the
        same UPDATE that checks it, so a token that has already been rotated
        (or is being rotated concurrently) is rejected.
        """
        token_hash = hash_token(refresh_token)
        user = self.db.query(User).filter(
            User.refresh_token_hash == token_hash
        ).first()

        if not user or not user.refresh_token_expires_at or user.refresh_token_expires_at < datetime.utcnow():
            logger.warning("Rejected refresh with unknown or expired token")
            raise InvalidTokenError("Invalid or expired refresh token")

        if access_token:
            claims = self.tokens.principal_from_expired_token(access_token)
            if claims.sub != user.id:
                logger.warning(f"Refresh token for user {user.id} presented with another user's access token")
                raise InvalidTokenError("Invalid or expired refresh token")

        new_refresh_token = self.tokens.issue_refresh_token()
        updated = self.db.query(User).filter(
            User.id == user.id,
            User.refresh_token_hash == token_hash,
        ).update(
            {
                User.refresh_token_hash: hash_token(new_refresh_token),
                User.refresh_token_expires_at: self.tokens.refresh_token_expiry(),
            },
            synchronize_session=False,
        )
        if updated != 1:
            self.db.rollback()
            raise InvalidTokenError("Invalid or expired refresh token")

        self.db.commit()
        self.db.refresh(user)

        return TokenResponse(
            access_token=self.tokens.issue_access_token(user),
            refresh_token=new_refresh_token,
            expires_in=self.tokens.expires_in,
        )

    def logout_user(self, refresh_token: str) -> None:
        """Logout user by revoking refresh token."""
        user = self.db.query(User).filter(
            User.refresh_token_hash == hash_token(refresh_token)
        ).first()

        if user:
            user.refresh_token_hash = None
            user.refresh_token_expires_at = None
            self.db.commit()
            logger.info(f"User {user.id} logged out")

    def request_password_reset(self, email: str) -> Optional[str]:
        """Generate password reset token.

        Returns the token for delivery by the caller, or None when the email
        is unknown. The HTTP layer answers identically in both cases.
        """
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            return None

        reset_token = generate_password_reset_token()
        user.password_reset_token_hash = hash_token(reset_token)
        user.password_reset_expires_at = datetime.utcnow() + timedelta(
            minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
        )
        self.db.commit()

        logger.info(f"Password reset requested for user {user.id}")
        return reset_token

    def reset_password(self, reset_data: PasswordResetConfirm) -> None:
        """Reset password using reset token."""
        user = self.db.query(User).filter(
            User.password_reset_token_hash == hash_token(reset_data.token),
            User.password_reset_expires_at > datetime.utcnow()
        ).first()

        if not user:
            raise InvalidInputError.for_field("token", "Invalid or expired reset token")

        user.password_hash = get_password_hash(reset_data.new_password)
        user.password_reset_token_hash = None
        user.password_reset_expires_at = None

        # Existing sessions end with the old password
        user.refresh_token_hash = None
        user.refresh_token_expires_at = None

        self.db.commit()
        logger.info(f"Password reset completed for user {user.id}")

    def change_password(self, user_id: str, password_data: ChangePassword) -> None:
        """Change a user's password after checking the current one."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise InvalidTokenError("User not found")

        if not verify_password(password_data.current_password, user.password_hash):
            raise InvalidInputError.for_field("current_password", "Current password is incorrect")

        user.password_hash = get_password_hash(password_data.new_password)
        self.db.commit()
        logger.info(f"Password changed for user {user.id}")

    def _rotate_tokens(self, user: User) -> Tuple[str, str]:
        """Issue a token pair and overwrite the stored refresh token."""
        refresh_token = self.tokens.issue_refresh_token()
        user.refresh_token_hash = hash_token(refresh_token)
        user.refresh_token_expires_at = self.tokens.refresh_token_expiry()
        return self.tokens.issue_access_token(user), refresh_token

    def _auth_response(self, user: User, access_token: str, refresh_token: str) -> AuthResponse:
        return AuthResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.tokens.expires_in,
            user=UserResponse.model_validate(user),
        )
