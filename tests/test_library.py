"""
Tests for book records, the local library and the Firestore book store.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytz

from backend import NotFoundError
from library import Book, FirestoreBookStore, LocalLibrary, ReadingStatus


class TestBook:

    def test_progress_is_clamped(self):
        assert Book("T", "A", page_count=200, current_page=50).progress == 0.25
        assert Book("T", "A", page_count=100, current_page=150).progress == 1.0
        assert Book("T", "A", page_count=0, current_page=10).progress == 0.0

    def test_reading_status(self):
        assert Book("T", "A").reading_status == ReadingStatus.NOT_STARTED
        assert Book("T", "A", page_count=10, current_page=3).reading_status == ReadingStatus.IN_PROGRESS
        assert Book("T", "A", page_count=10, current_page=10).reading_status == ReadingStatus.FINISHED

    def test_cover_url_upgraded_to_https(self):
        book = Book("T", "A", cover_url="http://books.example.com/cover.jpg")
        assert book.secure_cover_url == "https://books.example.com/cover.jpg"

    def test_firestore_fields_use_camel_case(self):
        book = Book("Dune", "Herbert", id="b1", page_count=412, rating=5)
        fields = book.to_firestore()

        assert fields["pageCount"] == 412
        assert fields["rating"] == 5
        assert "dateUpdated" not in fields

        restored = Book.from_firestore("b1", fields)
        assert restored.page_count == 412
        assert restored.rating == 5

    def test_document_without_author_is_rejected(self):
        assert Book.from_firestore("b1", {"title": "Orphan"}) is None

    def test_is_newer_than_needs_both_timestamps(self):
        older = Book("T", "A", id="b", date_updated=datetime(2024, 1, 1, tzinfo=pytz.UTC))
        newer = older.touched()

        assert newer.is_newer_than(older)
        assert not older.is_newer_than(newer)
        assert not Book("T", "A", id="b").is_newer_than(older)


class TestLocalLibrary:

    def test_books_persist_across_instances(self, tmp_path):
        path = str(tmp_path / "library.json")
        library = LocalLibrary(path)
        library.save(Book("Dune", "Herbert", id="b1"))
        library.save_many([Book("Emma", "Austen", id="b2")])

        reloaded = LocalLibrary(path)

        assert len(reloaded) == 2
        assert reloaded.get("b1").title == "Dune"

    def test_delete(self, tmp_path):
        library = LocalLibrary(str(tmp_path / "library.json"))
        library.save(Book("Dune", "Herbert", id="b1"))

        assert library.delete("b1") is True
        assert library.delete("b1") is False
        assert "b1" not in LocalLibrary(str(tmp_path / "library.json"))

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "library.json"
        path.write_text("{not json", encoding="utf-8")

        assert len(LocalLibrary(str(path))) == 0


class TestFirestoreBookStore:

    @pytest.fixture
    def firestore(self):
        return MagicMock(
            list_documents=AsyncMock(return_value=[
                ("b1", {"title": "Dune", "author": "Herbert"}),
                ("bad", {"title": "No author"}),
            ]),
            set_document=AsyncMock(),
            delete_document=AsyncMock(),
        )

    @pytest.mark.asyncio
    async def test_fetch_skips_malformed_documents(self, firestore):
        store = FirestoreBookStore(firestore)

        books = await store.fetch_books("user-1")

        assert [b.id for b in books] == ["b1"]
        firestore.list_documents.assert_awaited_once_with("users/user-1/books")

    @pytest.mark.asyncio
    async def test_save_writes_book_document(self, firestore):
        store = FirestoreBookStore(firestore)

        await store.save_book(Book("Dune", "Herbert", id="b1"), "user-1")

        path, fields = firestore.set_document.call_args.args
        assert path == "users/user-1/books/b1"
        assert fields["title"] == "Dune"

    @pytest.mark.asyncio
    async def test_deleting_missing_book_is_ok(self, firestore):
        firestore.delete_document = AsyncMock(side_effect=NotFoundError("users/user-1/books/b1"))
        store = FirestoreBookStore(firestore)

        await store.delete_book("b1", "user-1")
