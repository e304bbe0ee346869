"""
Data models for sync results and queued offline operations
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, Tuple

import pytz

from backend.firestore import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync attempt; immutable once produced"""
    success: bool
    last_sync_time: Optional[datetime] = None
    synced_item_count: int = 0
    errors: Tuple[str, ...] = ()

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple
        object.__setattr__(self, "errors", tuple(str(e) for e in self.errors))

        if self.errors and self.success:
            raise ValueError("A sync result with errors cannot be successful")
        if self.synced_item_count < 0:
            raise ValueError("synced_item_count must not be negative")

    @classmethod
    def failure(cls, error: Any, last_sync_time: Optional[datetime] = None,
                synced_item_count: int = 0) -> 'SyncResult':
        return cls(
            success=False,
            last_sync_time=last_sync_time,
            synced_item_count=synced_item_count,
            errors=(str(error),)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "synced_item_count": self.synced_item_count,
            "errors": list(self.errors),
        }


class SyncOperationType(Enum):
    """Kinds of offline changes waiting to be pushed"""
    ADD_BOOK = "add_book"
    UPDATE_BOOK = "update_book"
    DELETE_BOOK = "delete_book"


@dataclass
class SyncOperation:
    """A change made while offline, replayed on the next sync"""
    type: SyncOperationType
    item_id: str
    user_id: str
    data: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(pytz.UTC))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "data": self.data,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncOperation':
        return cls(
            type=SyncOperationType(data["type"]),
            item_id=data["item_id"],
            user_id=data["user_id"],
            data=data.get("data"),
            created_at=parse_timestamp(data["created_at"]) if data.get("created_at") else datetime.now(pytz.UTC),
        )


