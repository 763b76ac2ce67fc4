from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional, List
import logging

from ..core.cache import CacheService, get_cache
from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import (
    AuthenticationError, AuthorizationError, RateLimitExceededError
)
from ..core.security import (
    security, CallerIdentity, TokenService, UserRole, get_token_service
)
from ..models.user import User

logger = logging.getLogger(__name__)

async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenService = Depends(get_token_service),
) -> CallerIdentity:
    """Extract and verify the bearer token from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")

    claims = tokens.decode_access_token(credentials.credentials)
    return CallerIdentity.from_claims(claims)

def get_current_user(
    caller: CallerIdentity = Depends(get_current_caller),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    user = db.query(User).filter(User.id == caller.id).first()
    if not user:
        raise AuthenticationError("User not found")
    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        caller: CallerIdentity = Depends(get_current_caller)
    ) -> CallerIdentity:
        if caller.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return caller

    return role_checker

async def get_admin_caller(
    caller: CallerIdentity = Depends(require_role([UserRole.ADMIN]))
) -> CallerIdentity:
    """Require admin role."""
    return caller

# Rate limiting dependency
def rate_limit_check(
    request: Request,
    cache: CacheService = Depends(get_cache)
) -> None:
    """Per-IP fixed window rate limit for the unauthenticated auth endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = cache.backend.incr(key, 60)
    if current_requests > settings.AUTH_RATE_LIMIT_PER_MINUTE:
        logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
        raise RateLimitExceededError()
