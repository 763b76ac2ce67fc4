from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List
import logging

from ..models.user import User
from ..core.cache import CacheService, STATIC_TTL
from ..core.exceptions import InvalidOperationError, NotFoundError
from ..core.security import UserRole, get_password_hash
from ..schemas.auth import UserRegister
from ..schemas.user import UserResponse, UserUpdate
from . import cache_keys
from .cache_keys import invalidate_user

logger = logging.getLogger(__name__)

UserList = List[UserResponse]


class UserService:
    def __init__(self, db: Session, cache: CacheService):
        self.db = db
        self.cache = cache

    def list_users(self) -> List[UserResponse]:
        return self.cache.get_or_load(
            cache_keys.USERS_ALL, UserList,
            lambda: self._load(self.db.query(User)),
            STATIC_TTL,
        )

    def list_doctors(self) -> List[UserResponse]:
        return self.cache.get_or_load(
            cache_keys.USERS_DOCTORS, UserList,
            lambda: self._load(self.db.query(User).filter(User.role == UserRole.DOCTOR)),
            STATIC_TTL,
        )

    def list_patients(self) -> List[UserResponse]:
        return self.cache.get_or_load(
            cache_keys.USERS_PATIENTS, UserList,
            lambda: self._load(self.db.query(User).filter(User.role == UserRole.PATIENT)),
            STATIC_TTL,
        )

    def get_user(self, user_id: str) -> UserResponse:
        cached = self.cache.get(cache_keys.user_key(user_id), UserResponse)
        if cached is not None:
            return cached

        user = UserResponse.model_validate(self._get_or_404(user_id))
        self.cache.set(cache_keys.user_key(user_id), user, UserResponse, STATIC_TTL)
        return user

    def search_users(self, query: str) -> List[UserResponse]:
        """Case-insensitive substring match on email and names. Not cached."""
        # % and _ in the query match themselves
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        return self._load(
            self.db.query(User).filter(
                or_(
                    User.email.ilike(pattern, escape="\\"),
                    User.first_name.ilike(pattern, escape="\\"),
                    User.last_name.ilike(pattern, escape="\\"),
                )
            )
        )

    def create_user(self, user_data: UserRegister) -> UserResponse:
        """Create a user on behalf of an admin. No tokens are issued."""
        self._ensure_email_free(user_data.email)

        user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            role=user_data.role,
            specialization=user_data.specialization,
        )
        self.db.add(user)
        self._commit_email_write()
        self.db.refresh(user)

        invalidate_user(self.cache, user.id)
        logger.info(f"Created user {user.id} with role {user.role.value}")
        return UserResponse.model_validate(user)

    def update_user(self, user_id: str, user_data: UserUpdate) -> UserResponse:
        user = self._get_or_404(user_id)

        if user_data.first_name is not None:
            user.first_name = user_data.first_name
        if user_data.last_name is not None:
            user.last_name = user_data.last_name
        if user_data.email is not None and user_data.email != user.email:
            self._ensure_email_free(user_data.email)
            user.email = user_data.email
        # Specialization only applies to doctors
        if user_data.specialization is not None and user.role == UserRole.DOCTOR:
            user.specialization = user_data.specialization

        self._commit_email_write()
        self.db.refresh(user)

        invalidate_user(self.cache, user.id)
        logger.info(f"Updated user {user.id}")
        return UserResponse.model_validate(user)

    def update_profile_picture(self, user_id: str, profile_picture: str) -> UserResponse:
        user = self._get_or_404(user_id)
        user.profile_picture = profile_picture
        self.db.commit()
        self.db.refresh(user)

        invalidate_user(self.cache, user.id)
        return UserResponse.model_validate(user)

    def delete_user(self, user_id: str) -> None:
        user = self._get_or_404(user_id)
        self.db.delete(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Refused to delete user {user_id}: {exc.orig}")
            raise InvalidOperationError(
                "User cannot be deleted while appointments or messages reference them"
            ) from exc

        invalidate_user(self.cache, user_id)
        logger.info(f"Deleted user {user_id}")

    def _get_or_404(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    def _ensure_email_free(self, email: str) -> None:
        if self.db.query(User).filter(User.email == email).first():
            raise InvalidOperationError("Email already registered")

    def _commit_email_write(self) -> None:
        # The unique index catches an email taken after _ensure_email_free ran
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise InvalidOperationError("Email already registered") from exc

    @staticmethod
    def _load(query) -> List[UserResponse]:
        return [UserResponse.model_validate(user) for user in query.order_by(User.created_at).all()]
