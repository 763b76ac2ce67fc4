from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from pydantic import BaseModel
from enum import Enum
import base64
import hashlib
import secrets

from .config import settings
from .exceptions import InvalidTokenError

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT Security
security = HTTPBearer(auto_error=False)

class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"

class TokenClaims(BaseModel):
    sub: str
    email: str
    given_name: str
    family_name: str
    role: UserRole
    iss: Optional[str] = None
    aud: Optional[str] = None
    iat: Optional[int] = None
    exp: Optional[int] = None

class CallerIdentity(BaseModel):
    """The authenticated caller, decoded once per request."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "CallerIdentity":
        return cls(
            id=claims.sub,
            email=claims.email,
            first_name=claims.given_name,
            last_name=claims.family_name,
            role=claims.role,
        )

# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)

def hash_token(token: str) -> str:
    """Digest under which refresh and reset tokens are stored."""
    return hashlib.sha256(token.encode()).hexdigest()

def generate_password_reset_token() -> str:
    """Generate a secure random token for password reset."""
    return secrets.token_urlsafe(32)


class TokenService:
    """Issues signed access tokens and opaque refresh tokens.

    Access tokens are HS256 JWTs carrying the caller's identity and role.
    Refresh tokens carry no claims at all: they are only valid while their
    hash is the one stored on a user row with an unexpired expiry.
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        refresh_token_expire_days: int = 7,
    ):
        if not secret_key or not issuer or not audience:
            raise ValueError("Token signing key, issuer and audience must be configured")
        self.secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.access_token_expire = timedelta(minutes=access_token_expire_minutes)
        self.refresh_token_expire = timedelta(days=refresh_token_expire_days)

    @property
    def expires_in(self) -> int:
        return int(self.access_token_expire.total_seconds())

    def issue_access_token(self, user, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed access token for a user."""
        now = datetime.utcnow()
        expire = now + (expires_delta if expires_delta is not None else self.access_token_expire)

        to_encode = {
            "sub": user.id,
            "email": user.email,
            "given_name": user.first_name,
            "family_name": user.last_name,
            "role": UserRole(user.role).value,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def issue_refresh_token(self) -> str:
        """256 random bits, base64 encoded."""
        return base64.b64encode(secrets.token_bytes(32)).decode("ascii")

    def refresh_token_expiry(self) -> datetime:
        return datetime.utcnow() + self.refresh_token_expire

    def decode_access_token(self, token: str) -> TokenClaims:
        """Fully validate an access token, expiry included."""
        return self._decode(token, verify_exp=True)

    def principal_from_expired_token(self, token: str) -> TokenClaims:
        """Validate signature, algorithm, issuer and audience but not expiry.

        Lets a client prove it once held a valid token during refresh.
        """
        return self._decode(token, verify_exp=False)

    def _decode(self, token: str, verify_exp: bool) -> TokenClaims:
        try:
            header = jwt.get_unverified_header(token)
            if str(header.get("alg", "")).upper() != self.algorithm.upper():
                raise InvalidTokenError("Invalid token algorithm")

            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": verify_exp},
            )
            return TokenClaims(**payload)
        except (JWTError, ValueError) as exc:
            raise InvalidTokenError("Invalid or expired token") from exc


token_service = TokenService(
    secret_key=settings.JWT_SECRET_KEY,
    issuer=settings.JWT_ISSUER,
    audience=settings.JWT_AUDIENCE,
    algorithm=settings.JWT_ALGORITHM,
    access_token_expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    refresh_token_expire_days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
)

def get_token_service() -> TokenService:
    """Get the process-wide token service."""
    return token_service
