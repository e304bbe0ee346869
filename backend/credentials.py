"""
On-disk storage for the signed-in user's Firebase credentials
"""

import json
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Dict, Any

from core.logging_config import get_logger


@dataclass(frozen=True)
class Credentials:
    """Tokens returned by the Identity Toolkit for one signed-in user"""
    user_id: str
    email: str
    id_token: str
    refresh_token: str
    display_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Credentials':
        return cls(
            user_id=data["user_id"],
            email=data.get("email", ""),
            id_token=data.get("id_token", ""),
            refresh_token=data.get("refresh_token", ""),
            display_name=data.get("display_name", ""),
        )


class CredentialStore:
    """Keeps the current credentials in memory and mirrors them to a JSON file"""

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON file to persist to; ``None`` keeps credentials in memory only
        """
        self.logger = get_logger(__name__)
        self.path = Path(path) if path else None
        self._credentials: Optional[Credentials] = None
        self._loaded = False

    def load(self) -> Optional[Credentials]:
        """Read stored credentials; an unreadable file counts as signed out"""
        self._loaded = True
        if not self.path or not self.path.exists():
            self._credentials = None
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self._credentials = Credentials.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            self.logger.warning(f"Ignoring unreadable credentials file {self.path}: {e}")
            self._credentials = None

        return self._credentials

    def get(self) -> Optional[Credentials]:
        if not self._loaded:
            return self.load()
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self._credentials = credentials
        self._loaded = True
        if not self.path:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(credentials.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)

    def clear(self) -> None:
        self._credentials = None
        self._loaded = True
        if self.path and self.path.exists():
            self.path.unlink()
