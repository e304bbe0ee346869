"""
Firebase REST clients used by the identity and library sync services
"""

from .credentials import Credentials, CredentialStore
from .exceptions import (
    BackendError, BackendConnectionError, AuthenticationError, NotFoundError, NotSignedInError
)
from .firebase_auth import FirebaseAuthClient
from .firestore import FirestoreClient

__all__ = [
    "Credentials", "CredentialStore", "FirebaseAuthClient", "FirestoreClient",
    "BackendError", "BackendConnectionError", "AuthenticationError", "NotFoundError",
    "NotSignedInError",
]
