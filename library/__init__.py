"""
Book records with local and remote storage
"""

from .models import Book, ReadingStatus
from .local_store import LocalLibrary
from .remote_store import RemoteBookStore, FirestoreBookStore

__all__ = ["Book", "ReadingStatus", "LocalLibrary", "RemoteBookStore", "FirestoreBookStore"]
