"""
User and session records
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass(frozen=True)
class User:
    """Authenticated user as seen by the application"""
    id: str
    name: str = ""
    email: str = ""

    @classmethod
    def from_profile(cls, user_id: str, profile: Dict[str, Any]) -> 'User':
        """Build a user from a profile document; missing fields become empty strings"""
        return cls(
            id=user_id,
            name=profile.get("name") or "",
            email=profile.get("email") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class Session:
    """Current authentication state; ``logged_in`` is derived from ``user``"""
    user: Optional[User] = None

    @property
    def logged_in(self) -> bool:
        return self.user is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logged_in": self.logged_in,
            "user": self.user.to_dict() if self.user else None
        }


LOGGED_OUT = Session()
