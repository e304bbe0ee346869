"""
Sync state persistence: last successful sync time and pending operations
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from backend.firestore import format_timestamp, parse_timestamp
from core.logging_config import get_logger
from .models import SyncOperation


class SyncStatePersistence:
    """Saves and loads the sync state to a JSON file"""

    VERSION = "1.0"

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON file; ``None`` keeps state in memory (nothing survives restarts)
        """
        self.logger = get_logger(__name__)
        self.path = Path(path) if path else None
        self.save_count = 0

    def load(self) -> Tuple[Optional[datetime], List[SyncOperation]]:
        """
        Read saved state

        Returns:
            (last sync time, pending operations); empty state if nothing is saved
            or the file cannot be read
        """
        if not self.path or not self.path.exists():
            return None, []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)

            last_sync = data.get("last_sync_time")
            last_sync_time = parse_timestamp(last_sync) if last_sync else None
            operations = [SyncOperation.from_dict(item) for item in data.get("pending_operations", [])]
        except (OSError, ValueError, KeyError) as e:
            self.logger.error(f"Could not load sync state from {self.path}: {e}")
            return None, []

        return last_sync_time, operations

    def save(self, last_sync_time: Optional[datetime], operations: List[SyncOperation]) -> None:
        if not self.path:
            return

        save_data = {
            "version": self.VERSION,
            "last_sync_time": format_timestamp(last_sync_time) if last_sync_time else None,
            "pending_operations": [op.to_dict() for op in operations],
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(save_data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            self.save_count += 1
        except OSError as e:
            # Losing the queue on disk is not fatal: it is still held in memory
            self.logger.error(f"Could not save sync state to {self.path}: {e}")
