"""
Custom exceptions for the sync service
"""

from typing import Optional, Dict, Any


class SyncError(Exception):
    """Base exception for all sync errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class SyncAlreadyInProgressError(SyncError):
    """Raised when sync_all is called while another sync is running"""
    def __init__(self):
        super().__init__("Sync is already in progress")


class InvalidSyncDataError(SyncError):
    """Raised when a pending operation carries data that cannot be decoded"""
    def __init__(self, operation_type: str, item_id: str):
        self.operation_type = operation_type
        self.item_id = item_id
        super().__init__(f"Invalid data for {operation_type} on item {item_id}")
