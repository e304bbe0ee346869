"""
Remote book storage interface and its Firestore implementation
"""

from abc import ABC, abstractmethod
from typing import List

from backend import FirestoreClient, NotFoundError
from core.logging_config import get_logger
from .models import Book


class RemoteBookStore(ABC):
    """Per-user book collection on the backend"""

    @abstractmethod
    async def fetch_books(self, user_id: str) -> List[Book]:
        pass

    @abstractmethod
    async def save_book(self, book: Book, user_id: str) -> None:
        pass

    @abstractmethod
    async def delete_book(self, book_id: str, user_id: str) -> None:
        pass


class FirestoreBookStore(RemoteBookStore):
    """Books stored as ``{users_collection}/{uid}/{books_collection}/{book id}``"""

    def __init__(self, firestore: FirestoreClient,
                 users_collection: str = "users",
                 books_collection: str = "books"):
        self.logger = get_logger(__name__)
        self.firestore = firestore
        self.users_collection = users_collection
        self.books_collection = books_collection

    async def fetch_books(self, user_id: str) -> List[Book]:
        documents = await self.firestore.list_documents(self._collection(user_id))

        books = []
        for document_id, fields in documents:
            book = Book.from_firestore(document_id, fields)
            if book is None:
                self.logger.warning(f"Skipping malformed book document {document_id}")
                continue
            books.append(book)

        return books

    async def save_book(self, book: Book, user_id: str) -> None:
        await self.firestore.set_document(f"{self._collection(user_id)}/{book.id}", book.to_firestore())

    async def delete_book(self, book_id: str, user_id: str) -> None:
        try:
            await self.firestore.delete_document(f"{self._collection(user_id)}/{book_id}")
        except NotFoundError:
            # Already gone remotely
            self.logger.debug(f"Book {book_id} already deleted remotely")

    def _collection(self, user_id: str) -> str:
        return f"{self.users_collection}/{user_id}/{self.books_collection}"
