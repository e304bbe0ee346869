"""
Local book library persisted to a JSON file
"""

import json
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from core.logging_config import get_logger
from .models import Book


class LocalLibrary:
    """On-device copy of the user's books.

    Every write is flushed to disk immediately through a temp file and an
    atomic rename, so a crash never leaves a half-written library behind.
    """

    VERSION = "1.0"

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: JSON file to persist to; ``None`` keeps the library in memory
        """
        self.logger = get_logger(__name__)
        self.path = Path(path) if path else None
        self._books: Dict[str, Book] = {}

        self.last_save_time = 0.0
        self.save_count = 0

        self._load()

    def all_books(self) -> List[Book]:
        return list(self._books.values())

    def get(self, book_id: str) -> Optional[Book]:
        return self._books.get(book_id)

    def __contains__(self, book_id: str) -> bool:
        return book_id in self._books

    def __len__(self) -> int:
        return len(self._books)

    def save(self, book: Book) -> None:
        self._books[book.id] = book
        self._flush()

    def save_many(self, books: List[Book]) -> None:
        for book in books:
            self._books[book.id] = book
        self._flush()

    def delete(self, book_id: str) -> bool:
        """Remove a book; returns False if it was not stored"""
        if self._books.pop(book_id, None) is None:
            return False
        self._flush()
        return True

    def _load(self) -> None:
        if not self.path or not self.path.exists():
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            books = [Book.from_dict(item) for item in data.get("books", [])]
        except (OSError, ValueError, KeyError) as e:
            self.logger.error(f"Error loading library from {self.path}: {e}")
            return

        self._books = {book.id: book for book in books}
        self.logger.debug(f"Loaded {len(self._books)} books from {self.path}")

    def _flush(self) -> None:
        if not self.path:
            return

        save_data = {
            "version": self.VERSION,
            "saved_at": datetime.now().isoformat(),
            "books": [book.to_dict() for book in self._books.values()],
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(save_data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

        self.last_save_time = time.time()
        self.save_count += 1
