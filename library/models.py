"""
Book records shared by the local library, the remote store and the sync service
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional

import pytz

from backend.firestore import format_timestamp, parse_timestamp


class ReadingStatus(Enum):
    """Reading state derived from progress"""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


def _now() -> datetime:
    return datetime.now(pytz.UTC)


@dataclass
class Book:
    """A book in the user's library with its reading progress"""
    title: str
    author: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    isbn: Optional[str] = None
    page_count: int = 0
    current_page: int = 0
    date_added: datetime = field(default_factory=_now)
    date_updated: Optional[datetime] = None
    date_finished: Optional[datetime] = None
    genre: Optional[str] = None
    notes: Optional[str] = None
    is_favorite: bool = False
    rating: Optional[int] = None
    cover_url: Optional[str] = None

    @property
    def progress(self) -> float:
        """Fraction read in [0.0, 1.0]; 0.0 when the page count is unknown"""
        if self.page_count <= 0:
            return 0.0
        return max(0.0, min(1.0, self.current_page / self.page_count))

    @property
    def progress_percentage(self) -> int:
        return int(round(self.progress * 100))

    @property
    def reading_status(self) -> ReadingStatus:
        if self.date_finished is not None or (self.page_count > 0 and self.current_page >= self.page_count):
            return ReadingStatus.FINISHED
        if self.current_page > 0:
            return ReadingStatus.IN_PROGRESS
        return ReadingStatus.NOT_STARTED

    @property
    def secure_cover_url(self) -> Optional[str]:
        # Book APIs sometimes hand out http:// cover links
        if not self.cover_url:
            return None
        return self.cover_url.replace("http://", "https://", 1)

    def touched(self) -> 'Book':
        """Copy with ``date_updated`` set to now"""
        return replace(self, date_updated=_now())

    def is_newer_than(self, other: 'Book') -> bool:
        """True when this copy has a later ``date_updated`` than ``other``"""
        if self.date_updated is None or other.date_updated is None:
            return False
        return self.date_updated > other.date_updated

    def to_firestore(self) -> Dict[str, Any]:
        """Document fields for ``users/{uid}/books/{id}``"""
        fields: Dict[str, Any] = {
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn or "",
            "pageCount": self.page_count,
            "currentPage": self.current_page,
            "dateAdded": self.date_added,
            "isFavorite": self.is_favorite,
        }
        optional = {
            "dateUpdated": self.date_updated,
            "dateFinished": self.date_finished,
            "genre": self.genre,
            "notes": self.notes,
            "rating": self.rating,
            "coverURL": self.cover_url,
        }
        fields.update({key: value for key, value in optional.items() if value is not None})
        return fields

    @classmethod
    def from_firestore(cls, book_id: str, fields: Dict[str, Any]) -> Optional['Book']:
        """Build a book from document fields; documents without title or author are skipped"""
        title = fields.get("title")
        author = fields.get("author")
        if not isinstance(title, str) or not isinstance(author, str):
            return None

        return cls(
            id=book_id,
            title=title,
            author=author,
            isbn=fields.get("isbn") or None,
            page_count=int(fields.get("pageCount") or 0),
            current_page=int(fields.get("currentPage") or 0),
            date_added=fields.get("dateAdded") or _now(),
            date_updated=fields.get("dateUpdated"),
            date_finished=fields.get("dateFinished"),
            genre=fields.get("genre"),
            notes=fields.get("notes"),
            is_favorite=bool(fields.get("isFavorite", False)),
            rating=fields.get("rating"),
            cover_url=fields.get("coverURL"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form used for local storage and queued operations"""
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "page_count": self.page_count,
            "current_page": self.current_page,
            "date_added": format_timestamp(self.date_added),
            "date_updated": format_timestamp(self.date_updated) if self.date_updated else None,
            "date_finished": format_timestamp(self.date_finished) if self.date_finished else None,
            "genre": self.genre,
            "notes": self.notes,
            "is_favorite": self.is_favorite,
            "rating": self.rating,
            "cover_url": self.cover_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Book':
        """
        Inverse of ``to_dict``

        Raises:
            KeyError, ValueError: Missing title/author/id or malformed timestamps
        """
        def _ts(key: str) -> Optional[datetime]:
            value = data.get(key)
            return parse_timestamp(value) if value else None

        return cls(
            id=data["id"],
            title=data["title"],
            author=data["author"],
            isbn=data.get("isbn"),
            page_count=int(data.get("page_count") or 0),
            current_page=int(data.get("current_page") or 0),
            date_added=_ts("date_added") or _now(),
            date_updated=_ts("date_updated"),
            date_finished=_ts("date_finished"),
            genre=data.get("genre"),
            notes=data.get("notes"),
            is_favorite=bool(data.get("is_favorite", False)),
            rating=data.get("rating"),
            cover_url=data.get("cover_url"),
        )
