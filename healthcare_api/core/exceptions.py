from fastapi import HTTPException, status
from typing import Dict, List, Optional


class NotFoundError(HTTPException):
    """A referenced entity does not exist."""

    def __init__(self, detail: str = "The requested resource was not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class InvalidOperationError(HTTPException):
    """A business rule was violated, e.g. a duplicate email."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidInputError(HTTPException):
    """Input that passed schema validation but is still unacceptable."""

    def __init__(self, detail: str = "Validation failed", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, error: str) -> "InvalidInputError":
        return cls(errors=[{"field": field, "error": error}])


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsError(AuthenticationError):
    def __init__(self):
        # Same message for unknown email and wrong password
        super().__init__("Invalid email or password")


class InvalidTokenError(AuthenticationError):
    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class RateLimitExceededError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
        )
