"""
Sync service interface and the library sync implementation
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

import pytz

from backend import BackendError
from core.logging_config import get_logger, log_error_with_context
from identity.service import IdentityService
from library.local_store import LocalLibrary
from library.models import Book
from library.remote_store import RemoteBookStore
from .exceptions import InvalidSyncDataError, SyncAlreadyInProgressError, SyncError
from .models import SyncOperation, SyncOperationType, SyncResult
from .persistence import SyncStatePersistence


class SyncService(ABC):
    """Remote "sync all data" collaborator consumed by ``SyncTrigger``"""

    @abstractmethod
    async def sync_all(self) -> SyncResult:
        """
        Reconcile local and remote data as a whole

        Raises:
            SyncError: When the sync cannot even start (e.g. already running)
        """
        pass


class LibrarySyncService(SyncService):
    """Pushes offline book changes and reconciles the local library with the backend.

    A run replays pending operations in order, then (when a user is signed
    in) fetches the remote books, queues pushes for local-only and locally
    newer books, stores the remaining remote books locally and replays the
    newly queued pushes. The first backend failure ends the run; the failed
    operation and everything after it stay queued for the next run.
    """

    def __init__(self,
                 remote_store: RemoteBookStore,
                 local_library: LocalLibrary,
                 identity_service: IdentityService,
                 persistence: Optional[SyncStatePersistence] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.logger = get_logger(__name__)
        self.remote_store = remote_store
        self.local_library = local_library
        self.identity = identity_service
        self.persistence = persistence or SyncStatePersistence()
        self._clock = clock or (lambda: datetime.now(pytz.UTC))

        self.last_sync_time, self.pending_operations = self.persistence.load()
        self._syncing = False
        self._synced_items = 0

        # Stats
        self.sync_runs = 0
        self.failed_runs = 0

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def pending_count(self) -> int:
        return len(self.pending_operations)

    async def sync_all(self) -> SyncResult:
        if self._syncing:
            raise SyncAlreadyInProgressError()

        self._syncing = True
        self.sync_runs += 1
        self.logger.info("Data sync started...")

        errors: List[str] = []
        self._synced_items = 0

        try:
            await self._process_pending_operations(errors)

            user_id = self.identity.get_current_user_id()
            if user_id:
                await self._sync_books(user_id)
                await self._process_pending_operations(errors)

        except (BackendError, SyncError, OSError) as e:
            self.failed_runs += 1
            log_error_with_context(self.logger, e, "Data sync", pending_operations=len(self.pending_operations))
            self._save_state()
            return SyncResult.failure(e, last_sync_time=self.last_sync_time, synced_item_count=self._synced_items)

        finally:
            self._syncing = False

        if errors:
            self.failed_runs += 1
            self._save_state()
            return SyncResult(success=False, last_sync_time=self.last_sync_time,
                              synced_item_count=self._synced_items, errors=tuple(errors))

        self.last_sync_time = self._clock()
        self._save_state()
        return SyncResult(success=True, last_sync_time=self.last_sync_time, synced_item_count=self._synced_items)

    def add_book_offline(self, book: Book, user_id: str) -> None:
        """Store a new book locally and queue it for upload"""
        self.local_library.save(book)
        self._enqueue(SyncOperation(SyncOperationType.ADD_BOOK, book.id, user_id, book.to_dict()))

    def update_book_offline(self, book: Book, user_id: str) -> Book:
        """Store a changed book locally (stamping ``date_updated``) and queue the upload"""
        book = book.touched()
        self.local_library.save(book)
        self._enqueue(SyncOperation(SyncOperationType.UPDATE_BOOK, book.id, user_id, book.to_dict()))
        return book

    def delete_book_offline(self, book_id: str, user_id: str) -> None:
        """Remove a book locally and queue the remote delete"""
        self.local_library.delete(book_id)
        self._enqueue(SyncOperation(SyncOperationType.DELETE_BOOK, book_id, user_id))

    async def _process_pending_operations(self, errors: List[str]) -> None:
        """Replay queued operations in order, counting each one that reaches the backend"""
        while self.pending_operations:
            operation = self.pending_operations[0]

            try:
                await self._apply_operation(operation)
            except InvalidSyncDataError as e:
                # Undecodable payloads would block the queue forever
                self.logger.error(f"Dropping pending operation: {e}")
                errors.append(str(e))
            else:
                self._synced_items += 1

            self.pending_operations.pop(0)
            self._save_state()

    async def _apply_operation(self, operation: SyncOperation) -> None:
        if operation.type == SyncOperationType.DELETE_BOOK:
            await self.remote_store.delete_book(operation.item_id, operation.user_id)
            return

        if operation.data is None:
            raise InvalidSyncDataError(operation.type.value, operation.item_id)

        try:
            book = Book.from_dict(operation.data)
        except (KeyError, ValueError, TypeError):
            raise InvalidSyncDataError(operation.type.value, operation.item_id)

        await self.remote_store.save_book(book, operation.user_id)

    async def _sync_books(self, user_id: str) -> None:
        """Reconcile local and remote books, counting remote books stored locally"""
        server_books = await self.remote_store.fetch_books(user_id)
        local_books: Dict[str, Book] = {book.id: book for book in self.local_library.all_books()}
        server_ids = {book.id for book in server_books}
        queued_ids = {op.item_id for op in self.pending_operations}

        # Local-only books go up
        for book_id, book in local_books.items():
            if book_id not in server_ids and book_id not in queued_ids:
                self._enqueue(SyncOperation(SyncOperationType.ADD_BOOK, book_id, user_id, book.to_dict()))

        # Locally newer copies go up, everything else comes down
        to_store = []
        for server_book in server_books:
            local_book = local_books.get(server_book.id)
            if local_book is not None and local_book.is_newer_than(server_book):
                if server_book.id not in queued_ids:
                    self._enqueue(SyncOperation(SyncOperationType.UPDATE_BOOK, server_book.id, user_id,
                                                local_book.to_dict()))
                continue
            to_store.append(server_book)

        if to_store:
            self.local_library.save_many(to_store)
            self._synced_items += len(to_store)

        self.logger.debug(f"Reconciled {len(server_books)} remote and {len(local_books)} local books, "
                          f"{len(self.pending_operations)} push(es) queued")

    def _enqueue(self, operation: SyncOperation) -> None:
        self.pending_operations.append(operation)
        self._save_state()

    def _save_state(self) -> None:
        self.persistence.save(self.last_sync_time, self.pending_operations)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "is_syncing": self._syncing,
            "pending_operations": len(self.pending_operations),
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "sync_runs": self.sync_runs,
            "failed_runs": self.failed_runs,
        }
