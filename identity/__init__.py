"""
User session state and the identity service it talks to
"""

from .exceptions import (
    IdentityError, InvalidCredentialsError, RegistrationValidationError,
    SessionNotFoundError, IdentityServiceUnavailableError
)
from .models import User, Session, LOGGED_OUT
from .service import IdentityService, FirebaseIdentityService
from .session_state import SessionState

__all__ = [
    "User", "Session", "LOGGED_OUT", "IdentityService", "FirebaseIdentityService", "SessionState",
    "IdentityError", "InvalidCredentialsError", "RegistrationValidationError",
    "SessionNotFoundError", "IdentityServiceUnavailableError",
]
