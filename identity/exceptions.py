"""
Custom exceptions for identity operations
"""

from typing import Optional, Dict, Any


class IdentityError(Exception):
    """Base exception for all identity-service errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidCredentialsError(IdentityError):
    """Raised when the identity service rejects an email/password pair"""
    pass


class SessionNotFoundError(IdentityError):
    """Raised when a user id has no profile on the identity service"""
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No profile for user {user_id}")


class RegistrationValidationError(IdentityError):
    """Raised when registration input is rejected before contacting the service"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, {"field": field})


class IdentityServiceUnavailableError(IdentityError):
    """Raised when the identity service cannot be reached"""
    pass
