"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; ``cbt.main`` maps them to ``{"error": message}``
responses with the matching status code.
"""
from fastapi import status


class CBTError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(CBTError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class AuthenticationError(CBTError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"


class InvalidCredentialsError(AuthenticationError):
    message = "Invalid email or password"


class AuthorizationError(CBTError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Access denied"


class AccessExpiredError(AuthorizationError):
    message = "Your trial has expired. Please unlock premium access."


class NotFoundError(CBTError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class ConflictError(CBTError):
    status_code = status.HTTP_409_CONFLICT
    message = "Conflict"


class EmailTakenError(ConflictError):
    message = "Email already registered"


class InvalidCodeError(ConflictError):
    message = "Invalid or already used unlock code"


class PersistenceError(CBTError):
    """Data-store failure; the message shown to clients stays opaque."""
