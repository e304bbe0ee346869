"""
Exceptions raised by the Firebase REST clients
"""

from typing import Optional, Dict, Any


class BackendError(Exception):
    """Base exception for all remote backend errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class BackendConnectionError(BackendError):
    """Raised when the backend cannot be reached"""
    pass


class AuthenticationError(BackendError):
    """Raised when the backend rejects credentials or an expired token"""
    def __init__(self, code: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message or f"Authentication failed: {code}", details)


class NotFoundError(BackendError):
    """Raised when a requested document does not exist"""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Document not found: {path}")


class NotSignedInError(BackendError):
    """Raised when an authorized call is made without stored credentials"""
    def __init__(self):
        super().__init__("No signed-in user")
