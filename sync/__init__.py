"""
Library sync service and the trigger that decides when it runs
"""

from .exceptions import (
    SyncError, SyncAlreadyInProgressError, InvalidSyncDataError
)
from .models import SyncResult, SyncOperation, SyncOperationType
from .persistence import SyncStatePersistence
from .service import SyncService, LibrarySyncService
from .trigger import SyncTrigger, SyncTriggerState

__all__ = [
    "SyncResult", "SyncOperation", "SyncOperationType", "SyncStatePersistence",
    "SyncService", "LibrarySyncService", "SyncTrigger", "SyncTriggerState",
    "SyncError", "SyncAlreadyInProgressError", "InvalidSyncDataError",
]
